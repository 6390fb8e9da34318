"""
Permission Form Models

Forms authored by teachers, their custom fields and attached documents,
staff shares, parent submissions (one per form/parent/student), field
answers and the append-only review log.
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ENUM, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permission_slips.modules.shared import BaseModel

if TYPE_CHECKING:
    from permission_slips.modules.students.models import Student
    from permission_slips.modules.users.models import User


class FormStatus(str, enum.Enum):
    """Lifecycle status of a form."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class ReviewStatus(str, enum.Enum):
    """Review status of a form (NULL when no review has started)."""

    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REVISION_NEEDED = "REVISION_NEEDED"


class EventType(str, enum.Enum):
    FIELD_TRIP = "FIELD_TRIP"
    SPORTS = "SPORTS"
    ACTIVITY = "ACTIVITY"
    OTHER = "OTHER"


class FieldType(str, enum.Enum):
    TEXT = "text"
    CHECKBOX = "checkbox"
    DATE = "date"
    TEXTAREA = "textarea"


class SubmissionStatus(str, enum.Enum):
    """Status of a parent's submission for one student."""

    PENDING = "PENDING"
    SIGNED = "SIGNED"
    DECLINED = "DECLINED"


class ReviewAction(str, enum.Enum):
    """Actions recorded in the review log."""

    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REVISION_NEEDED = "REVISION_NEEDED"
    EDITED = "EDITED"


# Name of the (form, parent, student) uniqueness constraint; upserts target it.
SUBMISSION_KEY_CONSTRAINT = "uq_form_submissions_form_parent_student"


class PermissionForm(BaseModel):
    """
    A permission slip describing one activity.

    Owned by the teacher who created it; belongs to the teacher's school.
    """

    __tablename__ = "permission_forms"

    teacher_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    school_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("schools.id", ondelete="SET NULL"),
        nullable=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    event_type: Mapped[EventType] = mapped_column(
        ENUM(EventType, name="event_type", create_type=True),
        nullable=False,
        default=EventType.OTHER,
    )
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[FormStatus] = mapped_column(
        ENUM(FormStatus, name="form_status", create_type=True),
        nullable=False,
        default=FormStatus.DRAFT,
    )

    # Review workflow
    requires_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    review_status: Mapped[ReviewStatus | None] = mapped_column(
        ENUM(ReviewStatus, name="review_status", create_type=True),
        nullable=True,
    )
    review_needed_by: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_expedited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reviewed_by: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    reminders_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    teacher: Mapped["User"] = relationship("User", foreign_keys=[teacher_id], lazy="selectin")
    fields: Mapped[list["FormField"]] = relationship(
        "FormField",
        back_populates="form",
        cascade="all, delete-orphan",
        order_by="FormField.order",
        lazy="selectin",
    )
    documents: Mapped[list["FormDocument"]] = relationship(
        "FormDocument",
        back_populates="form",
        cascade="all, delete-orphan",
        order_by="FormDocument.order",
        lazy="selectin",
    )
    shares: Mapped[list["FormShare"]] = relationship(
        "FormShare",
        back_populates="form",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_permission_forms_teacher_id", "teacher_id"),
        Index("ix_permission_forms_school_id", "school_id"),
        Index("ix_permission_forms_status", "status"),
        Index("ix_permission_forms_review_status", "review_status"),
    )

    def __repr__(self) -> str:
        return f"<PermissionForm(id={self.id}, title={self.title}, status={self.status})>"


class FormField(BaseModel):
    """A custom question on a form."""

    __tablename__ = "form_fields"

    form_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("permission_forms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_type: Mapped[FieldType] = mapped_column(
        ENUM(FieldType, name="field_type", create_type=True),
        nullable=False,
    )
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    form: Mapped["PermissionForm"] = relationship("PermissionForm", back_populates="fields")


class FormDocument(BaseModel):
    """Attachment metadata for a form (the file itself lives in external storage)."""

    __tablename__ = "form_documents"

    form_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("permission_forms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    requires_ack: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    form: Mapped["PermissionForm"] = relationship("PermissionForm", back_populates="documents")


class FormShare(BaseModel):
    """Access granted on a form to another staff user."""

    __tablename__ = "form_shares"

    form_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("permission_forms.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    form: Mapped["PermissionForm"] = relationship("PermissionForm", back_populates="shares")
    user: Mapped["User"] = relationship("User", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("form_id", "user_id", name="uq_form_shares_form_user"),
        Index("ix_form_shares_user_id", "user_id"),
    )


class FormSubmission(BaseModel):
    """
    One parent's decision for one student on one form.

    (form_id, parent_id, student_id) is unique: distribution inserts
    PENDING rows with ON CONFLICT DO NOTHING, and signing upserts against
    the same constraint, so concurrent requests can never create a second
    row or overwrite a signature.
    """

    __tablename__ = "form_submissions"

    form_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("permission_forms.id", ondelete="CASCADE"),
        nullable=False,
    )
    parent_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )

    status: Mapped[SubmissionStatus] = mapped_column(
        ENUM(SubmissionStatus, name="submission_status", create_type=True),
        nullable=False,
        default=SubmissionStatus.PENDING,
    )
    # Opaque signature payload (e.g. a PNG data URL); empty while PENDING
    signature_data: Mapped[str] = mapped_column(Text, nullable=False, default="")
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Last deadline reminder sent for this submission
    reminder_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    form: Mapped["PermissionForm"] = relationship("PermissionForm", lazy="selectin")
    parent: Mapped["User"] = relationship("User", lazy="selectin")
    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    responses: Mapped[list["FieldResponse"]] = relationship(
        "FieldResponse",
        back_populates="submission",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("form_id", "parent_id", "student_id", name=SUBMISSION_KEY_CONSTRAINT),
        Index("ix_form_submissions_parent_id", "parent_id"),
        Index("ix_form_submissions_status", "status"),
    )


class FieldResponse(BaseModel):
    """Answer to one custom field for one submission."""

    __tablename__ = "field_responses"

    submission_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("form_submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("form_fields.id", ondelete="CASCADE"),
        nullable=False,
    )
    response: Mapped[str] = mapped_column(Text, nullable=False)

    submission: Mapped["FormSubmission"] = relationship(
        "FormSubmission", back_populates="responses"
    )
    field: Mapped["FormField"] = relationship("FormField", lazy="selectin")


class FormReviewLog(BaseModel):
    """Append-only history of review actions on a form."""

    __tablename__ = "form_review_logs"

    form_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("permission_forms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewer_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    action: Mapped[ReviewAction] = mapped_column(
        ENUM(ReviewAction, name="review_action", create_type=True),
        nullable=False,
    )
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    reviewer: Mapped["User | None"] = relationship("User", lazy="selectin")
