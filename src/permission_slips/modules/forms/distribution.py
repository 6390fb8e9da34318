"""
Form Distribution

Sends a form to every parent of every targeted student:

1. In one transaction: lock the form, promote DRAFT to ACTIVE, resolve the
   (student, parent) pairs for the form's school (optionally narrowed to
   groups) and insert one PENDING submission per pair. Pairs that already
   have a submission are left untouched, so distributing twice is safe.
2. After commit: one email per parent listing all of their children,
   sent in small concurrent batches. A failed send is reported and never
   undoes the distribution.

If no student in the target set has a linked parent the transaction is
rolled back (the form keeps its previous status) and the failure says
whether the school has no students at all or no linked parents. A group
selection with nobody linked in it counts as the latter.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.auth import CurrentUser
from permission_slips.core.email import build_permission_request, send_batched
from permission_slips.modules.audit import AuditAction, record
from permission_slips.modules.forms import repository
from permission_slips.modules.forms.exceptions import (
    FormNotFoundError,
    NoStudentsInSchoolError,
    NoStudentsWithParentsError,
    ReviewNotApprovedError,
)
from permission_slips.modules.forms.models import ReviewStatus
from permission_slips.modules.forms.schemas import DeliveryError, DistributeResponse
from permission_slips.modules.forms.service import activate_via_distribution, ensure_can_mutate
from permission_slips.modules.students import repository as students_repository

logger = logging.getLogger(__name__)


@dataclass
class ParentRecipient:
    """One parent and the children they are asked to sign for."""

    email: str
    name: str
    student_names: list[str] = field(default_factory=list)


def group_by_parent(pairs) -> list[ParentRecipient]:
    """
    Collapse (student, parent) pairs into one recipient per parent.

    Order follows the first appearance of each parent; student names keep
    the order of the pairs.
    """
    recipients: dict[str, ParentRecipient] = {}
    for student, parent in pairs:
        recipient = recipients.get(parent.id)
        if recipient is None:
            recipient = ParentRecipient(email=parent.email, name=parent.full_name)
            recipients[parent.id] = recipient
        recipient.student_names.append(student.full_name)
    return list(recipients.values())


async def distribute_form(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
    group_ids: list[str] | None = None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> DistributeResponse:
    """
    Distribute a form to linked parents.

    Args:
        db: Database session
        user: Caller (owner, edit share or admin)
        form_id: Form to distribute
        group_ids: Restrict to members of these groups

    Returns:
        DistributeResponse with submissions created, addresses emailed and
        per-address delivery errors

    Raises:
        FormNotFoundError, ForbiddenError
        ReviewNotApprovedError: Form requires review and is not APPROVED
        FormClosedError: Form is CLOSED
        NoStudentsInSchoolError, NoStudentsWithParentsError
    """
    logger.info(f"Distributing form {form_id} (groups={group_ids}) by {user.id}")

    try:
        # ============================================
        # ATOMIC TRANSACTION: status flip + submissions
        # ============================================
        form = await repository.get_form_for_update(db, form_id)
        if not form:
            raise FormNotFoundError(form_id)

        await ensure_can_mutate(db, user, form)

        if form.requires_review and form.review_status != ReviewStatus.APPROVED:
            logger.warning(f"Form {form_id} not approved (review_status={form.review_status})")
            raise ReviewNotApprovedError()

        activated = activate_via_distribution(form)

        pairs = await students_repository.get_linked_pairs(db, form.school_id, group_ids)
        if not pairs:
            total = await students_repository.count_students(db, form.school_id)
            if total == 0:
                raise NoStudentsInSchoolError()
            raise NoStudentsWithParentsError()

        created = await repository.insert_pending_submissions(
            db, form.id, [(parent.id, student.id) for student, parent in pairs]
        )

        await db.commit()
        # ============================================
        # END ATOMIC TRANSACTION
        # ============================================
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Form {form_id}: {created} submission(s) created for {len(pairs)} pair(s)"
        f"{' (activated)' if activated else ''}"
    )

    recipients = group_by_parent(pairs)
    messages = [
        build_permission_request(
            to_email=r.email,
            parent_name=r.name,
            form_title=form.title,
            student_names=r.student_names,
            deadline=form.deadline,
            form_id=form.id,
        )
        for r in recipients
    ]
    report = await send_batched(messages)

    await record(
        AuditAction.FORM_DISTRIBUTE,
        actor=user,
        resource_type="PermissionForm",
        resource_id=form.id,
        metadata={
            "submissionsCreated": created,
            "emailsSent": len(report.sent),
            "emailErrors": len(report.errors),
            "groupIds": group_ids or [],
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )

    return DistributeResponse(
        submissions_created=created,
        emails_sent=report.sent,
        errors=[DeliveryError(**e) for e in report.errors],
    )
