"""
Forms Repository

Database operations for permission forms, shares, submissions, field
responses and the review log.

Functions here only stage changes (add / flush); the calling service owns
the transaction and decides when to commit or roll back.
"""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.modules.forms.models import (
    SUBMISSION_KEY_CONSTRAINT,
    FieldResponse,
    FormDocument,
    FormField,
    FormReviewLog,
    FormShare,
    FormStatus,
    FormSubmission,
    PermissionForm,
    ReviewAction,
    SubmissionStatus,
)
from permission_slips.modules.shared import generate_uuid
from permission_slips.modules.students.models import Student

# =============================================================================
# Forms
# =============================================================================


async def create_form(
    db: AsyncSession,
    *,
    teacher_id: str,
    school_id: str | None,
    title: str,
    description: str,
    event_date: datetime,
    event_type,
    deadline: datetime,
    requires_review: bool = False,
    reminders_enabled: bool = True,
    fields: Iterable[dict] = (),
) -> PermissionForm:
    """Create a DRAFT form with its custom fields."""
    form = PermissionForm(
        teacher_id=teacher_id,
        school_id=school_id,
        title=title,
        description=description,
        event_date=event_date,
        event_type=event_type,
        deadline=deadline,
        status=FormStatus.DRAFT,
        requires_review=requires_review,
        reminders_enabled=reminders_enabled,
    )
    form.fields = [
        FormField(
            field_type=f["field_type"],
            label=f["label"],
            required=f.get("required", False),
            order=index,
        )
        for index, f in enumerate(fields)
    ]
    db.add(form)
    await db.flush()
    return form


async def get_form(db: AsyncSession, form_id: str) -> PermissionForm | None:
    """Get form by ID."""
    return await db.get(PermissionForm, form_id)


async def get_form_for_update(db: AsyncSession, form_id: str) -> PermissionForm | None:
    """Get form by ID, holding a row lock until the transaction ends."""
    result = await db.execute(
        select(PermissionForm)
        .where(PermissionForm.id == form_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_forms_by_ids(db: AsyncSession, form_ids: list[str]) -> list[PermissionForm]:
    result = await db.execute(select(PermissionForm).where(PermissionForm.id.in_(form_ids)))
    return list(result.scalars().all())


async def get_forms_for_update(db: AsyncSession, form_ids: list[str]) -> list[PermissionForm]:
    """Get several forms, locking their rows in id order."""
    result = await db.execute(
        select(PermissionForm)
        .where(PermissionForm.id.in_(form_ids))
        .order_by(PermissionForm.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_forms(
    db: AsyncSession,
    *,
    user_id: str | None = None,
    school_id: str | None = None,
    status: FormStatus | None = None,
) -> list[PermissionForm]:
    """
    List forms, newest first.

    Args:
        user_id: Restrict to forms owned by or shared with this user
        school_id: Restrict to forms of this school
        status: Optional status filter
    """
    stmt = select(PermissionForm)

    if user_id is not None:
        shared = select(FormShare.form_id).where(FormShare.user_id == user_id)
        stmt = stmt.where(
            or_(PermissionForm.teacher_id == user_id, PermissionForm.id.in_(shared))
        )
    if school_id is not None:
        stmt = stmt.where(PermissionForm.school_id == school_id)
    if status is not None:
        stmt = stmt.where(PermissionForm.status == status)

    result = await db.execute(stmt.order_by(PermissionForm.created_at.desc()))
    return list(result.scalars().all())


async def replace_fields(db: AsyncSession, form: PermissionForm, fields: Iterable[dict]) -> None:
    """Replace a form's custom fields, renumbering their order."""
    await db.execute(delete(FormField).where(FormField.form_id == form.id))
    for index, f in enumerate(fields):
        db.add(
            FormField(
                form_id=form.id,
                field_type=f["field_type"],
                label=f["label"],
                required=f.get("required", False),
                order=index,
            )
        )
    await db.flush()
    await db.refresh(form, attribute_names=["fields"])


async def delete_form(db: AsyncSession, form: PermissionForm) -> None:
    """Delete a form; children cascade in the database."""
    await db.delete(form)
    await db.flush()


async def copy_form(db: AsyncSession, source: PermissionForm, *, teacher_id: str) -> PermissionForm:
    """Create a DRAFT copy of a form with its fields and documents, review state reset."""
    copy = PermissionForm(
        teacher_id=teacher_id,
        school_id=source.school_id,
        title=f"{source.title} (Copy)"[:200],
        description=source.description,
        event_date=source.event_date,
        event_type=source.event_type,
        deadline=source.deadline,
        status=FormStatus.DRAFT,
        requires_review=source.requires_review,
        reminders_enabled=source.reminders_enabled,
    )
    copy.fields = [
        FormField(field_type=f.field_type, label=f.label, required=f.required, order=f.order)
        for f in source.fields
    ]
    copy.documents = [
        FormDocument(
            file_name=d.file_name,
            file_url=d.file_url,
            file_size=d.file_size,
            mime_type=d.mime_type,
            description=d.description,
            requires_ack=d.requires_ack,
            order=d.order,
        )
        for d in source.documents
    ]
    db.add(copy)
    await db.flush()
    return copy


# =============================================================================
# Shares
# =============================================================================


async def get_share(db: AsyncSession, form_id: str, user_id: str) -> FormShare | None:
    result = await db.execute(
        select(FormShare).where(FormShare.form_id == form_id, FormShare.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def upsert_share(db: AsyncSession, *, form_id: str, user_id: str, can_edit: bool) -> None:
    """Create a share, or update can_edit on the existing one."""
    stmt = pg_insert(FormShare).values(
        id=generate_uuid(),
        form_id=form_id,
        user_id=user_id,
        can_edit=can_edit,
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_form_shares_form_user",
        set_={"can_edit": stmt.excluded.can_edit, "updated_at": func.now()},
    )
    await db.execute(stmt)
    await db.flush()


async def delete_share(db: AsyncSession, form_id: str, user_id: str) -> bool:
    """Remove a share. Returns False if there was none."""
    result = await db.execute(
        delete(FormShare).where(FormShare.form_id == form_id, FormShare.user_id == user_id)
    )
    return result.rowcount > 0


async def list_shares(db: AsyncSession, form_id: str) -> list[FormShare]:
    result = await db.execute(
        select(FormShare).where(FormShare.form_id == form_id).order_by(FormShare.created_at)
    )
    return list(result.scalars().all())


# =============================================================================
# Review log
# =============================================================================


async def add_review_log(
    db: AsyncSession,
    *,
    form_id: str,
    reviewer_id: str | None,
    action: ReviewAction,
    comments: str | None = None,
) -> FormReviewLog:
    """Append a review log row."""
    entry = FormReviewLog(
        form_id=form_id,
        reviewer_id=reviewer_id,
        action=action,
        comments=comments,
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_review_logs(db: AsyncSession, form_id: str) -> list[FormReviewLog]:
    """Review history for a form, newest first."""
    result = await db.execute(
        select(FormReviewLog)
        .where(FormReviewLog.form_id == form_id)
        .order_by(FormReviewLog.created_at.desc())
    )
    return list(result.scalars().all())


# =============================================================================
# Submissions
# =============================================================================


async def count_submissions_by_status(db: AsyncSession, form_id: str) -> dict[str, int]:
    """Number of submissions per status for a form (every status present, zero-filled)."""
    result = await db.execute(
        select(FormSubmission.status, func.count(FormSubmission.id))
        .where(FormSubmission.form_id == form_id)
        .group_by(FormSubmission.status)
    )
    counts = {s.value: 0 for s in SubmissionStatus}
    for status, count in result.all():
        counts[SubmissionStatus(status).value] = count
    return counts


async def insert_pending_submissions(
    db: AsyncSession,
    form_id: str,
    pairs: Iterable[tuple[str, str]],
) -> int:
    """
    Insert a PENDING submission for each (parent_id, student_id) pair.

    Existing submissions for the same key are left untouched
    (ON CONFLICT DO NOTHING), so re-running distribution is safe.

    Returns:
        Number of submissions actually created
    """
    rows = [
        {
            "id": generate_uuid(),
            "form_id": form_id,
            "parent_id": parent_id,
            "student_id": student_id,
            "status": SubmissionStatus.PENDING,
            "signature_data": "",
        }
        for parent_id, student_id in pairs
    ]
    if not rows:
        return 0

    stmt = (
        pg_insert(FormSubmission)
        .values(rows)
        .on_conflict_do_nothing(constraint=SUBMISSION_KEY_CONSTRAINT)
        .returning(FormSubmission.id)
    )
    result = await db.execute(stmt)
    return len(result.scalars().all())


async def get_submission(db: AsyncSession, submission_id: str) -> FormSubmission | None:
    """Get submission by ID."""
    return await db.get(FormSubmission, submission_id)


async def get_submission_for_update(
    db: AsyncSession,
    *,
    form_id: str,
    parent_id: str,
    student_id: str,
) -> FormSubmission | None:
    """Get the submission for a key, locking the row for the rest of the transaction."""
    result = await db.execute(
        select(FormSubmission)
        .where(
            FormSubmission.form_id == form_id,
            FormSubmission.parent_id == parent_id,
            FormSubmission.student_id == student_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_signed_submission(
    db: AsyncSession,
    *,
    form_id: str,
    parent_id: str,
    student_id: str,
    signature_data: str,
    signed_at: datetime,
    ip_address: str | None,
) -> str | None:
    """
    Record a signature for a key, creating the submission if needed.

    The update branch only applies while the stored row is not SIGNED, so
    of two concurrent signers exactly one gets a row back.

    Returns:
        The submission ID, or None if the submission was already signed
    """
    stmt = pg_insert(FormSubmission).values(
        id=generate_uuid(),
        form_id=form_id,
        parent_id=parent_id,
        student_id=student_id,
        status=SubmissionStatus.SIGNED,
        signature_data=signature_data,
        signed_at=signed_at,
        ip_address=ip_address,
    )
    stmt = stmt.on_conflict_do_update(
        constraint=SUBMISSION_KEY_CONSTRAINT,
        set_={
            "status": stmt.excluded.status,
            "signature_data": stmt.excluded.signature_data,
            "signed_at": stmt.excluded.signed_at,
            "ip_address": stmt.excluded.ip_address,
            "updated_at": func.now(),
        },
        where=FormSubmission.status != SubmissionStatus.SIGNED,
    ).returning(FormSubmission.id)

    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def replace_field_responses(
    db: AsyncSession,
    submission_id: str,
    responses: Iterable[tuple[str, str]],
) -> None:
    """Delete a submission's field responses and insert the given (field_id, response) pairs."""
    await db.execute(delete(FieldResponse).where(FieldResponse.submission_id == submission_id))
    for field_id, response in responses:
        db.add(FieldResponse(submission_id=submission_id, field_id=field_id, response=response))
    await db.flush()


async def list_parent_submissions(
    db: AsyncSession,
    form_id: str,
    parent_id: str,
) -> list[FormSubmission]:
    result = await db.execute(
        select(FormSubmission).where(
            FormSubmission.form_id == form_id,
            FormSubmission.parent_id == parent_id,
        )
    )
    return list(result.scalars().all())


async def list_form_submissions(db: AsyncSession, form_id: str) -> list[FormSubmission]:
    """Every submission of a form, ordered by student name."""
    result = await db.execute(
        select(FormSubmission)
        .join(Student, Student.id == FormSubmission.student_id)
        .where(FormSubmission.form_id == form_id)
        .order_by(Student.last_name, Student.first_name)
    )
    return list(result.scalars().all())


async def list_pending_submissions(db: AsyncSession, form_ids: list[str]) -> list[FormSubmission]:
    """PENDING submissions of the given forms, grouped by form."""
    result = await db.execute(
        select(FormSubmission)
        .where(
            FormSubmission.form_id.in_(form_ids),
            FormSubmission.status == SubmissionStatus.PENDING,
        )
        .order_by(FormSubmission.form_id)
    )
    return list(result.scalars().all())


async def get_pending_for_reminders(
    db: AsyncSession,
    now: datetime,
    window_end: datetime,
    reminded_before: datetime,
) -> list[FormSubmission]:
    """
    PENDING submissions on ACTIVE, reminder-enabled forms whose deadline
    falls within [now, window_end], not reminded since reminded_before.
    """
    result = await db.execute(
        select(FormSubmission)
        .join(PermissionForm, PermissionForm.id == FormSubmission.form_id)
        .where(
            FormSubmission.status == SubmissionStatus.PENDING,
            PermissionForm.status == FormStatus.ACTIVE,
            PermissionForm.reminders_enabled.is_(True),
            PermissionForm.deadline >= now,
            PermissionForm.deadline <= window_end,
            or_(
                FormSubmission.reminder_sent_at.is_(None),
                FormSubmission.reminder_sent_at < reminded_before,
            ),
        )
        .order_by(PermissionForm.deadline)
    )
    return list(result.scalars().all())


async def mark_reminders_sent(db: AsyncSession, submission_ids: list[str], sent_at: datetime) -> None:
    """Stamp reminder_sent_at on the given submissions."""
    if not submission_ids:
        return
    await db.execute(
        update(FormSubmission)
        .where(FormSubmission.id.in_(submission_ids))
        .values(reminder_sent_at=sent_at)
    )
