"""
Forms Service Layer

Business logic for authoring and managing permission forms:
create / read / list / update / delete, duplication, sharing with other
staff, and the CLOSED <-> ACTIVE lifecycle (close, re-open, bulk close).

Access rules:
- Role checks happen once per request in the router (core.permissions).
- Resource rules live here because they need the loaded form:
  * read:   owner, any share, an admin of the form's school, a super admin,
            or a reviewer of the form's school
  * mutate: owner, a share with can_edit, an admin of the form's school,
            or a super admin
  * delete / duplicate / share: owner or admin only

Every state change commits in one transaction; audit entries are written
after the commit and never fail the request.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.auth import CurrentUser
from permission_slips.modules.audit import AuditAction, record
from permission_slips.modules.forms import repository
from permission_slips.modules.forms.exceptions import (
    CannotShareWithParentError,
    CannotShareWithSelfError,
    DeadlinePassedError,
    FormClosedError,
    FormNotEditableError,
    FormNotFoundError,
    ForbiddenError,
    InvalidDatesError,
    InvalidFormStatusError,
    ShareNotFoundError,
    UserNotFoundError,
)
from permission_slips.modules.forms.models import (
    FormStatus,
    PermissionForm,
    ReviewAction,
)
from permission_slips.modules.forms.schemas import (
    BulkCloseResponse,
    FormCreate,
    FormUpdate,
    ShareResponse,
    SkippedForm,
)
from permission_slips.modules.forms.state_machine import (
    InvalidStatusTransitionError,
    transition_form,
)
from permission_slips.modules.users.models import UserRole
from permission_slips.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "PermissionForm"

# Attributes that change what parents are asked to sign; editable only in DRAFT
CONTENT_FIELDS = frozenset(
    {"title", "description", "event_date", "event_type", "deadline", "requires_review", "fields"}
)


# =============================================================================
# Access helpers
# =============================================================================


def is_school_admin(user: CurrentUser, form: PermissionForm) -> bool:
    """SUPER_ADMIN always; ADMIN only for forms of their own school."""
    if user.role == UserRole.SUPER_ADMIN.value:
        return True
    return (
        user.role == UserRole.ADMIN.value
        and user.school_id is not None
        and form.school_id == user.school_id
    )


def is_owner_or_admin(user: CurrentUser, form: PermissionForm) -> bool:
    return form.teacher_id == user.id or is_school_admin(user, form)


async def can_mutate(db: AsyncSession, user: CurrentUser, form: PermissionForm) -> bool:
    """Owner, school admin, or a share with can_edit."""
    if is_owner_or_admin(user, form):
        return True
    share = await repository.get_share(db, form.id, user.id)
    return share is not None and share.can_edit


async def ensure_can_mutate(db: AsyncSession, user: CurrentUser, form: PermissionForm) -> None:
    if not await can_mutate(db, user, form):
        logger.warning(f"User {user.id} may not modify form {form.id}")
        raise ForbiddenError()


def ensure_owner_or_admin(user: CurrentUser, form: PermissionForm) -> None:
    if not is_owner_or_admin(user, form):
        logger.warning(f"User {user.id} is not owner/admin of form {form.id}")
        raise ForbiddenError()


async def ensure_can_read(db: AsyncSession, user: CurrentUser, form: PermissionForm) -> None:
    if is_owner_or_admin(user, form):
        return
    if (
        user.role == UserRole.REVIEWER.value
        and user.school_id is not None
        and form.school_id == user.school_id
    ):
        return
    if await repository.get_share(db, form.id, user.id) is not None:
        return
    logger.warning(f"User {user.id} may not read form {form.id}")
    raise ForbiddenError()


async def load_form(db: AsyncSession, form_id: str, *, for_update: bool = False) -> PermissionForm:
    """Load a form or raise FormNotFoundError."""
    if for_update:
        form = await repository.get_form_for_update(db, form_id)
    else:
        form = await repository.get_form(db, form_id)
    if not form:
        logger.warning(f"Form not found: {form_id}")
        raise FormNotFoundError(form_id)
    return form


# =============================================================================
# Lifecycle transitions
# =============================================================================


def activate_via_distribution(form: PermissionForm) -> bool:
    """
    Promote a form to ACTIVE as part of distribution.

    DRAFT becomes ACTIVE; an ACTIVE form is left as is (repeat distribution).

    Returns:
        True if the status changed

    Raises:
        FormClosedError: If the form is CLOSED
    """
    if form.status == FormStatus.ACTIVE:
        return False
    if form.status == FormStatus.CLOSED:
        raise FormClosedError()
    transition_form(form, FormStatus.ACTIVE)
    return True


def _transition_or_raise(form: PermissionForm, target: FormStatus) -> FormStatus:
    try:
        return transition_form(form, target)
    except InvalidStatusTransitionError as e:
        logger.warning(f"Form {form.id}: {e}")
        raise InvalidFormStatusError(form.status.value, target.value) from e


async def close_form(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PermissionForm:
    """
    Close an ACTIVE form. New signatures are rejected afterwards.

    Raises:
        FormNotFoundError, ForbiddenError, InvalidFormStatusError
    """
    try:
        form = await load_form(db, form_id, for_update=True)
        await ensure_can_mutate(db, user, form)
        previous = _transition_or_raise(form, FormStatus.CLOSED)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form_id} closed by {user.id}")
    await record(
        AuditAction.FORM_CLOSED,
        actor=user,
        resource_type=RESOURCE_TYPE,
        resource_id=form_id,
        metadata={"previousStatus": previous.value, "newStatus": FormStatus.CLOSED.value},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return form


async def reopen_form(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PermissionForm:
    """
    Re-open a CLOSED form.

    Raises:
        InvalidFormStatusError: If the form is not CLOSED
        DeadlinePassedError: (EVENT_DATE_PASSED) if the event date is in the past
    """
    try:
        form = await load_form(db, form_id, for_update=True)
        await ensure_can_mutate(db, user, form)

        if form.status != FormStatus.CLOSED:
            raise InvalidFormStatusError(form.status.value, FormStatus.ACTIVE.value)
        if form.event_date < datetime.now(UTC):
            raise DeadlinePassedError(
                message="Cannot re-open a form whose event date has passed.",
                error_code="EVENT_DATE_PASSED",
            )

        previous = _transition_or_raise(form, FormStatus.ACTIVE)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form_id} re-opened by {user.id}")
    await record(
        AuditAction.FORM_REOPENED,
        actor=user,
        resource_type=RESOURCE_TYPE,
        resource_id=form_id,
        metadata={"previousStatus": previous.value, "newStatus": FormStatus.ACTIVE.value},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return form


async def bulk_close(
    db: AsyncSession,
    user: CurrentUser,
    form_ids: list[str],
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> BulkCloseResponse:
    """
    Close several forms at once.

    Forms that do not exist, that the caller may not modify, or that are
    not ACTIVE are skipped with a reason; the rest are closed together.
    """
    unique_ids = list(dict.fromkeys(form_ids))
    closed: list[str] = []
    skipped: list[SkippedForm] = []

    try:
        forms = {f.id: f for f in await repository.get_forms_for_update(db, unique_ids)}

        for form_id in unique_ids:
            form = forms.get(form_id)
            if form is None:
                skipped.append(SkippedForm(form_id=form_id, reason="NOT_FOUND"))
            elif not await can_mutate(db, user, form):
                skipped.append(SkippedForm(form_id=form_id, reason="FORBIDDEN"))
            elif form.status != FormStatus.ACTIVE:
                skipped.append(SkippedForm(form_id=form_id, reason="NOT_ACTIVE"))
            else:
                transition_form(form, FormStatus.CLOSED)
                closed.append(form_id)

        if closed:
            await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Bulk close by {user.id}: {len(closed)} closed, {len(skipped)} skipped")
    for form_id in closed:
        await record(
            AuditAction.FORM_CLOSED,
            actor=user,
            resource_type=RESOURCE_TYPE,
            resource_id=form_id,
            metadata={
                "previousStatus": FormStatus.ACTIVE.value,
                "newStatus": FormStatus.CLOSED.value,
                "bulk": True,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )

    return BulkCloseResponse(closed=closed, skipped=skipped)


# =============================================================================
# CRUD
# =============================================================================


async def create_form(
    db: AsyncSession,
    user: CurrentUser,
    data: FormCreate,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PermissionForm:
    """Create a DRAFT form (and its fields) owned by the caller, in the caller's school."""
    try:
        form = await repository.create_form(
            db,
            teacher_id=user.id,
            school_id=user.school_id,
            title=data.title,
            description=data.description,
            event_date=data.event_date,
            event_type=data.event_type,
            deadline=data.deadline,
            requires_review=data.requires_review,
            reminders_enabled=data.reminders_enabled,
            fields=[f.model_dump() for f in data.fields],
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form.id} created by {user.id}")
    await record(
        AuditAction.FORM_CREATE,
        actor=user,
        resource_type=RESOURCE_TYPE,
        resource_id=form.id,
        metadata={"title": data.title, "requiresReview": data.requires_review},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return form


async def get_form(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
) -> tuple[PermissionForm, dict[str, int]]:
    """
    Get a form the caller may read, with submission counts per status.

    Raises:
        FormNotFoundError, ForbiddenError
    """
    form = await load_form(db, form_id)
    await ensure_can_read(db, user, form)
    counts = await repository.count_submissions_by_status(db, form.id)
    return form, counts


async def list_forms(
    db: AsyncSession,
    user: CurrentUser,
    status: FormStatus | None = None,
) -> list[PermissionForm]:
    """
    List the forms visible to the caller.

    Super admins see every form; admins and reviewers see their school's
    forms; everyone else sees forms they own or that are shared with them.
    """
    if user.role == UserRole.SUPER_ADMIN.value:
        return await repository.list_forms(db, status=status)
    if user.role in (UserRole.ADMIN.value, UserRole.REVIEWER.value):
        if user.school_id is None:
            return []
        return await repository.list_forms(db, school_id=user.school_id, status=status)
    return await repository.list_forms(db, user_id=user.id, status=status)


async def update_form(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
    data: FormUpdate,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PermissionForm:
    """
    Update a form.

    Content (title, description, dates, event type, review flag, fields)
    can only change while the form is DRAFT. Changes to a form already in
    the review workflow are recorded in the review log as EDITED.

    Raises:
        FormNotFoundError, ForbiddenError, FormNotEditableError, InvalidDatesError
    """
    changes = data.model_dump(exclude_unset=True)
    content_changes = sorted(CONTENT_FIELDS & changes.keys())

    try:
        form = await load_form(db, form_id, for_update=True)
        await ensure_can_mutate(db, user, form)

        if content_changes and form.status != FormStatus.DRAFT:
            raise FormNotEditableError()

        event_date = changes.get("event_date") or form.event_date
        deadline = changes.get("deadline") or form.deadline
        if deadline >= event_date:
            raise InvalidDatesError()

        fields = changes.pop("fields", None)
        for attr, value in changes.items():
            if value is not None:
                setattr(form, attr, value)
        if fields is not None:
            await repository.replace_fields(db, form, fields)

        if content_changes and form.review_status is not None:
            await repository.add_review_log(
                db,
                form_id=form.id,
                reviewer_id=user.id,
                action=ReviewAction.EDITED,
                comments=f"Edited: {', '.join(content_changes)}",
            )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form_id} updated by {user.id}: {sorted(changes.keys())}")
    await record(
        AuditAction.FORM_UPDATE,
        actor=user,
        resource_type=RESOURCE_TYPE,
        resource_id=form_id,
        metadata={"changedFields": sorted(data.model_dump(exclude_unset=True).keys())},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return form


async def delete_form(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Delete a form and (by cascade) its submissions. Owner or admin only."""
    try:
        form = await load_form(db, form_id, for_update=True)
        ensure_owner_or_admin(user, form)
        title = form.title
        await repository.delete_form(db, form)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form_id} deleted by {user.id}")
    await record(
        AuditAction.FORM_DELETE,
        actor=user,
        resource_type=RESOURCE_TYPE,
        resource_id=form_id,
        metadata={"title": title},
        ip_address=ip_address,
        user_agent=user_agent,
    )


async def duplicate_form(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PermissionForm:
    """Copy a form into a new DRAFT owned by the caller. Owner or admin only."""
    try:
        source = await load_form(db, form_id)
        ensure_owner_or_admin(user, source)
        copy = await repository.copy_form(db, source, teacher_id=user.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form_id} duplicated as {copy.id} by {user.id}")
    await record(
        AuditAction.FORM_DUPLICATE,
        actor=user,
        resource_type=RESOURCE_TYPE,
        resource_id=copy.id,
        metadata={"sourceFormId": form_id},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return copy


# =============================================================================
# Sharing
# =============================================================================


async def share_form(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
    email: str,
    can_edit: bool,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> ShareResponse:
    """
    Share a form with another staff member (or update their can_edit flag).

    Raises:
        UserNotFoundError: No such user (or the user belongs to another school)
        CannotShareWithSelfError, CannotShareWithParentError
    """
    try:
        form = await load_form(db, form_id)
        ensure_owner_or_admin(user, form)

        target = await UserRepository.get_by_email(db, email)
        if not target or (
            user.role != UserRole.SUPER_ADMIN.value and target.school_id != form.school_id
        ):
            raise UserNotFoundError(email)
        if target.id == user.id:
            raise CannotShareWithSelfError()
        if target.role == UserRole.PARENT:
            raise CannotShareWithParentError()

        await repository.upsert_share(db, form_id=form.id, user_id=target.id, can_edit=can_edit)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form_id} shared with {target.id} (can_edit={can_edit})")
    await record(
        AuditAction.FORM_SHARE,
        actor=user,
        resource_type=RESOURCE_TYPE,
        resource_id=form_id,
        metadata={"sharedWith": target.id, "canEdit": can_edit},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return ShareResponse(
        user_id=target.id,
        email=target.email,
        name=target.full_name,
        role=UserRole(target.role).value,
        can_edit=can_edit,
    )


async def unshare_form(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
    target_user_id: str,
) -> None:
    """Remove a share. Owner or admin only."""
    try:
        form = await load_form(db, form_id)
        ensure_owner_or_admin(user, form)
        if not await repository.delete_share(db, form.id, target_user_id):
            raise ShareNotFoundError()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Form {form_id} unshared from {target_user_id} by {user.id}")


async def list_shares(db: AsyncSession, user: CurrentUser, form_id: str) -> list[ShareResponse]:
    form = await load_form(db, form_id)
    await ensure_can_read(db, user, form)
    shares = await repository.list_shares(db, form.id)
    return [
        ShareResponse(
            user_id=s.user.id,
            email=s.user.email,
            name=s.user.full_name,
            role=UserRole(s.user.role).value,
            can_edit=s.can_edit,
        )
        for s in shares
    ]
