"""initial schema

Revision ID: a0b1c2d3e4f5
Revises:
Create Date: 2026-10-16 12:00:00.000000

Creates every table of the permission slip workflow:
1. schools, users (tenancy and accounts)
2. students, parent_links, groups, group_members
3. permission_forms with fields, documents, shares, review log
4. form_submissions (unique per form/parent/student) and field_responses
5. invites and the append-only audit_logs

Enum types are created up front with checkfirst so the migration can be
re-run against a partially initialised database.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a0b1c2d3e4f5"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


ENUMS = {
    "user_role": ("SUPER_ADMIN", "ADMIN", "TEACHER", "REVIEWER", "PARENT"),
    "event_type": ("FIELD_TRIP", "SPORTS", "ACTIVITY", "OTHER"),
    "form_status": ("DRAFT", "ACTIVE", "CLOSED"),
    "review_status": ("PENDING_REVIEW", "APPROVED", "REVISION_NEEDED"),
    "field_type": ("text", "checkbox", "date", "textarea"),
    "submission_status": ("PENDING", "SIGNED", "DECLINED"),
    "review_action": ("SUBMITTED", "APPROVED", "REVISION_NEEDED", "EDITED"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _base_columns() -> list[sa.Column]:
    """Primary key and timestamps (from BaseModel)."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _uuid_fk(name: str, target: str, ondelete: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    """Create the full schema."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # Tenancy and accounts
    op.create_table(
        "schools",
        *_base_columns(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_schools_name", "schools", ["name"], unique=True)

    op.create_table(
        "users",
        *_base_columns(),
        _uuid_fk("school_id", "schools.id", "SET NULL", nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_school_id", "users", ["school_id"])

    # Students
    op.create_table(
        "students",
        *_base_columns(),
        _uuid_fk("school_id", "schools.id", "SET NULL", nullable=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("grade", sa.String(length=20), nullable=False),
    )
    op.create_index("ix_students_school_id", "students", ["school_id"])

    op.create_table(
        "parent_links",
        *_base_columns(),
        _uuid_fk("parent_id", "users.id", "CASCADE"),
        _uuid_fk("student_id", "students.id", "CASCADE"),
        sa.Column("relationship", sa.String(length=50), nullable=False, server_default="Parent"),
        sa.UniqueConstraint("parent_id", "student_id", name="uq_parent_links_parent_student"),
    )
    op.create_index("ix_parent_links_student_id", "parent_links", ["student_id"])

    op.create_table(
        "groups",
        *_base_columns(),
        _uuid_fk("school_id", "schools.id", "CASCADE", nullable=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
    )
    op.create_index("ix_groups_school_id", "groups", ["school_id"])

    op.create_table(
        "group_members",
        *_base_columns(),
        _uuid_fk("group_id", "groups.id", "CASCADE"),
        _uuid_fk("student_id", "students.id", "CASCADE"),
        sa.UniqueConstraint("group_id", "student_id", name="uq_group_members_group_student"),
    )

    # Forms
    op.create_table(
        "permission_forms",
        *_base_columns(),
        _uuid_fk("teacher_id", "users.id", "CASCADE"),
        _uuid_fk("school_id", "schools.id", "SET NULL", nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_type", _enum("event_type"), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", _enum("form_status"), nullable=False),
        sa.Column("requires_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("review_status", _enum("review_status"), nullable=True),
        sa.Column("review_needed_by", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_expedited", sa.Boolean(), nullable=False, server_default=sa.false()),
        _uuid_fk("reviewed_by", "users.id", "SET NULL", nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_comments", sa.Text(), nullable=True),
        sa.Column("reminders_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_permission_forms_teacher_id", "permission_forms", ["teacher_id"])
    op.create_index("ix_permission_forms_school_id", "permission_forms", ["school_id"])
    op.create_index("ix_permission_forms_status", "permission_forms", ["status"])
    op.create_index("ix_permission_forms_review_status", "permission_forms", ["review_status"])

    op.create_table(
        "form_fields",
        *_base_columns(),
        _uuid_fk("form_id", "permission_forms.id", "CASCADE"),
        sa.Column("field_type", _enum("field_type"), nullable=False),
        sa.Column("label", sa.String(length=200), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("order", sa.Integer(), nullable=False),
    )
    op.create_index("ix_form_fields_form_id", "form_fields", ["form_id"])

    op.create_table(
        "form_documents",
        *_base_columns(),
        _uuid_fk("form_id", "permission_forms.id", "CASCADE"),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_url", sa.String(length=1000), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("requires_ack", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_form_documents_form_id", "form_documents", ["form_id"])

    op.create_table(
        "form_shares",
        *_base_columns(),
        _uuid_fk("form_id", "permission_forms.id", "CASCADE"),
        _uuid_fk("user_id", "users.id", "CASCADE"),
        sa.Column("can_edit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("form_id", "user_id", name="uq_form_shares_form_user"),
    )
    op.create_index("ix_form_shares_user_id", "form_shares", ["user_id"])

    op.create_table(
        "form_submissions",
        *_base_columns(),
        _uuid_fk("form_id", "permission_forms.id", "CASCADE"),
        _uuid_fk("parent_id", "users.id", "CASCADE"),
        _uuid_fk("student_id", "students.id", "CASCADE"),
        sa.Column("status", _enum("submission_status"), nullable=False),
        sa.Column("signature_data", sa.Text(), nullable=False, server_default=""),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "form_id",
            "parent_id",
            "student_id",
            name="uq_form_submissions_form_parent_student",
        ),
    )
    op.create_index("ix_form_submissions_parent_id", "form_submissions", ["parent_id"])
    op.create_index("ix_form_submissions_status", "form_submissions", ["status"])

    op.create_table(
        "field_responses",
        *_base_columns(),
        _uuid_fk("submission_id", "form_submissions.id", "CASCADE"),
        _uuid_fk("field_id", "form_fields.id", "CASCADE"),
        sa.Column("response", sa.Text(), nullable=False),
    )
    op.create_index("ix_field_responses_submission_id", "field_responses", ["submission_id"])

    op.create_table(
        "form_review_logs",
        *_base_columns(),
        _uuid_fk("form_id", "permission_forms.id", "CASCADE"),
        _uuid_fk("reviewer_id", "users.id", "SET NULL", nullable=True),
        sa.Column("action", _enum("review_action"), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
    )
    op.create_index("ix_form_review_logs_form_id", "form_review_logs", ["form_id"])

    # Invites and audit
    op.create_table(
        "invites",
        *_base_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        _uuid_fk("school_id", "schools.id", "CASCADE", nullable=True),
        sa.Column("token", sa.String(length=255), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        _uuid_fk("created_by", "users.id", "SET NULL", nullable=True),
    )
    op.create_index("ix_invites_email", "invites", ["email"])

    op.create_table(
        "audit_logs",
        *_base_columns(),
        _uuid_fk("user_id", "users.id", "SET NULL", nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=50), nullable=False, server_default="System"),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    """Drop the full schema."""
    for table in (
        "audit_logs",
        "invites",
        "form_review_logs",
        "field_responses",
        "form_submissions",
        "form_shares",
        "form_documents",
        "form_fields",
        "permission_forms",
        "group_members",
        "groups",
        "parent_links",
        "students",
        "users",
        "schools",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
