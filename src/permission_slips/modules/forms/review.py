"""
Review Workflow

Gates distribution of forms that require review behind a reviewer's
approval:

    teacher submits  ->  PENDING_REVIEW
    reviewer         ->  APPROVED | REVISION_NEEDED (comments mandatory)
    teacher edits and re-submits REVISION_NEEDED -> PENDING_REVIEW

Reviewers may only act on forms of their own school; that check runs
before anything else so a reviewer cannot probe the review state of
another school's forms. Every action is appended to the form's review log.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.auth import CurrentUser
from permission_slips.core.email import (
    build_review_requested,
    send_batched,
    send_revision_requested,
)
from permission_slips.modules.audit import AuditAction, record
from permission_slips.modules.forms import repository
from permission_slips.modules.forms.exceptions import (
    CommentsRequiredError,
    DifferentSchoolError,
    FormNotDraftError,
    InvalidReviewStateError,
    NotFormOwnerError,
    ReviewNotRequiredError,
)
from permission_slips.modules.forms.models import (
    FormStatus,
    PermissionForm,
    ReviewAction,
    ReviewStatus,
)
from permission_slips.modules.forms.schemas import ReviewLogEntry
from permission_slips.modules.forms.service import ensure_can_read, load_form
from permission_slips.modules.forms.state_machine import (
    REVIEWABLE_STATES,
    InvalidStatusTransitionError,
    transition_review,
)
from permission_slips.modules.users.models import UserRole
from permission_slips.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


def _ensure_reviewable(reviewer: CurrentUser, form: PermissionForm) -> None:
    """Same school first, then review state."""
    if reviewer.school_id is None or reviewer.school_id != form.school_id:
        logger.warning(f"Reviewer {reviewer.id} denied: form {form.id} is from another school")
        raise DifferentSchoolError()
    if form.review_status not in REVIEWABLE_STATES:
        current = form.review_status.value if form.review_status else None
        raise InvalidReviewStateError(current)


def _apply_review(form: PermissionForm, target: ReviewStatus) -> None:
    try:
        transition_review(form, target)
    except InvalidStatusTransitionError as e:
        current = form.review_status.value if form.review_status else None
        raise InvalidReviewStateError(current) from e


async def submit_for_review(
    db: AsyncSession,
    teacher: CurrentUser,
    form_id: str,
    *,
    review_needed_by: datetime | None = None,
    is_expedited: bool = False,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PermissionForm:
    """
    Submit a DRAFT form that requires review (or re-submit after revision).

    Raises:
        FormNotFoundError
        NotFormOwnerError: Caller is not the teacher who created the form
        FormNotDraftError, ReviewNotRequiredError, InvalidReviewStateError
    """
    try:
        form = await load_form(db, form_id, for_update=True)

        if form.teacher_id != teacher.id:
            raise NotFormOwnerError()
        if form.status != FormStatus.DRAFT:
            raise FormNotDraftError()
        if not form.requires_review:
            raise ReviewNotRequiredError()

        previous = form.review_status
        _apply_review(form, ReviewStatus.PENDING_REVIEW)
        form.review_needed_by = review_needed_by
        form.is_expedited = is_expedited
        form.reviewed_by = None
        form.reviewed_at = None
        form.review_comments = None

        await repository.add_review_log(
            db,
            form_id=form.id,
            reviewer_id=teacher.id,
            action=ReviewAction.SUBMITTED,
            comments="Expedited review requested" if is_expedited else None,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form_id} submitted for review by {teacher.id}")
    await record(
        AuditAction.FORM_SUBMITTED_FOR_REVIEW,
        actor=teacher,
        resource_type="PermissionForm",
        resource_id=form_id,
        metadata={
            "previousReviewStatus": previous.value if previous else None,
            "isExpedited": is_expedited,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )

    # Notify the school's reviewers (best effort)
    try:
        if form.school_id:
            reviewers = await UserRepository.list_by_school_and_role(
                db, form.school_id, UserRole.REVIEWER
            )
            messages = [
                build_review_requested(
                    to_email=r.email,
                    reviewer_name=r.full_name,
                    form_title=form.title,
                    teacher_name=teacher.name or teacher.email,
                    form_id=form.id,
                    review_needed_by=review_needed_by,
                    is_expedited=is_expedited,
                )
                for r in reviewers
                if r.is_active
            ]
            await send_batched(messages)
    except Exception as e:
        logger.error(f"Failed to notify reviewers for form {form_id}: {e}", exc_info=True)

    return form


async def approve_form(
    db: AsyncSession,
    reviewer: CurrentUser,
    form_id: str,
    comments: str | None = None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PermissionForm:
    """
    Approve a form awaiting review.

    Raises:
        FormNotFoundError
        DifferentSchoolError: Form belongs to another school (checked first)
        InvalidReviewStateError: Form is not PENDING_REVIEW / REVISION_NEEDED
    """
    comments = comments.strip() if comments else None

    try:
        form = await load_form(db, form_id, for_update=True)
        _ensure_reviewable(reviewer, form)

        _apply_review(form, ReviewStatus.APPROVED)
        form.reviewed_by = reviewer.id
        form.reviewed_at = datetime.now(UTC)
        form.review_comments = comments

        await repository.add_review_log(
            db,
            form_id=form.id,
            reviewer_id=reviewer.id,
            action=ReviewAction.APPROVED,
            comments=comments,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form_id} approved by reviewer {reviewer.id}")
    await record(
        AuditAction.FORM_APPROVED,
        actor=reviewer,
        resource_type="PermissionForm",
        resource_id=form_id,
        metadata={"hasComments": bool(comments)},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return form


async def request_revision(
    db: AsyncSession,
    reviewer: CurrentUser,
    form_id: str,
    comments: str | None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PermissionForm:
    """
    Send a form back to its teacher with mandatory comments.

    Raises:
        CommentsRequiredError: Comments empty or whitespace
        FormNotFoundError, DifferentSchoolError, InvalidReviewStateError
    """
    comments = (comments or "").strip()
    if not comments:
        raise CommentsRequiredError()

    try:
        form = await load_form(db, form_id, for_update=True)
        _ensure_reviewable(reviewer, form)

        _apply_review(form, ReviewStatus.REVISION_NEEDED)
        form.reviewed_by = reviewer.id
        form.reviewed_at = datetime.now(UTC)
        form.review_comments = comments

        await repository.add_review_log(
            db,
            form_id=form.id,
            reviewer_id=reviewer.id,
            action=ReviewAction.REVISION_NEEDED,
            comments=comments,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Revision requested on form {form_id} by reviewer {reviewer.id}")
    await record(
        AuditAction.FORM_REVISION_REQUESTED,
        actor=reviewer,
        resource_type="PermissionForm",
        resource_id=form_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    # Tell the teacher (best effort)
    try:
        teacher = form.teacher
        sent = await send_revision_requested(
            to_email=teacher.email,
            teacher_name=teacher.full_name,
            form_title=form.title,
            comments=comments,
            form_id=form.id,
        )
        if not sent:
            logger.error(f"Failed to send revision request email for form {form_id}")
    except Exception as e:
        logger.error(f"Exception sending revision request email: {e}", exc_info=True)

    return form


async def get_review_log(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
) -> list[ReviewLogEntry]:
    """Review history of a form, newest first."""
    form = await load_form(db, form_id)
    await ensure_can_read(db, user, form)

    entries = await repository.list_review_logs(db, form.id)
    return [
        ReviewLogEntry(
            id=e.id,
            action=e.action,
            comments=e.comments,
            reviewer_id=e.reviewer_id,
            reviewer_name=e.reviewer.full_name if e.reviewer else None,
            created_at=e.created_at,
        )
        for e in entries
    ]
