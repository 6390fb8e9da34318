"""
Parent Reminders

Emails parents who still have unsigned submissions. Used by the hourly
deadline job and by staff reminding parents of chosen forms on demand.

- One email per (parent, form), listing every unsigned child
- Emails go out through send_batched(); a failed send is counted and
  never stops the run
- reminder_sent_at is stamped only on groups whose own email went out,
  so a failed reminder is picked up again by the next job run
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.auth import CurrentUser
from permission_slips.core.email import DeliveryReport, build_deadline_reminder, send_batched
from permission_slips.modules.forms import repository
from permission_slips.modules.forms.models import FormStatus, FormSubmission
from permission_slips.modules.forms.schemas import BulkRemindResponse, SkippedForm
from permission_slips.modules.forms.service import can_mutate

logger = logging.getLogger(__name__)


@dataclass
class ReminderGroup:
    """All unsigned submissions of one parent on one form."""

    parent_email: str
    parent_name: str
    form_id: str
    form_title: str
    deadline: datetime
    student_names: list[str] = field(default_factory=list)
    submission_ids: list[str] = field(default_factory=list)


def group_reminders(submissions: list[FormSubmission]) -> list[ReminderGroup]:
    """Group pending submissions by (parent, form), keeping first-seen order."""
    groups: dict[tuple[str, str], ReminderGroup] = {}
    for submission in submissions:
        key = (submission.parent_id, submission.form_id)
        group = groups.get(key)
        if group is None:
            group = ReminderGroup(
                parent_email=submission.parent.email,
                parent_name=submission.parent.full_name,
                form_id=submission.form_id,
                form_title=submission.form.title,
                deadline=submission.form.deadline,
            )
            groups[key] = group
        group.student_names.append(submission.student.full_name)
        group.submission_ids.append(submission.id)
    return list(groups.values())


def days_until(deadline: datetime, now: datetime) -> int:
    """Whole days left before the deadline, rounded up (0 once it has passed)."""
    seconds = (deadline - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


async def deliver_reminders(
    db: AsyncSession,
    submissions: list[FormSubmission],
    now: datetime,
) -> tuple[list[ReminderGroup], DeliveryReport]:
    """
    Email each (parent, form) group once and stamp the delivered groups.

    Messages are built in group order, so position i of the batch belongs
    to groups[i] and DeliveryReport.delivered maps straight back to the
    submissions to stamp. A stamping failure is logged and rolled back;
    the emails have already gone out.

    Returns:
        The groups and the delivery report
    """
    groups = group_reminders(submissions)
    messages = [
        build_deadline_reminder(
            to_email=g.parent_email,
            parent_name=g.parent_name,
            form_title=g.form_title,
            student_names=g.student_names,
            days_remaining=days_until(g.deadline, now),
            form_id=g.form_id,
        )
        for g in groups
    ]
    report = await send_batched(messages)

    delivered = set(report.delivered)
    reminded_ids = [
        sid
        for index, g in enumerate(groups)
        if index in delivered
        for sid in g.submission_ids
    ]
    try:
        await repository.mark_reminders_sent(db, reminded_ids, now)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to record reminder timestamps: {e}", exc_info=True)

    return groups, report


async def bulk_remind(
    db: AsyncSession,
    user: CurrentUser,
    form_ids: list[str],
) -> BulkRemindResponse:
    """
    Remind every parent with a PENDING submission on the given forms.

    Only ACTIVE forms the caller may modify are processed; the others are
    reported in `skipped` (NOT_FOUND, FORBIDDEN, NOT_ACTIVE). Unlike the
    scheduled job this ignores the reminder interval and the
    reminders_enabled flag, since a person asked for it.
    """
    unique_ids = list(dict.fromkeys(form_ids))
    remindable: list[str] = []
    skipped: list[SkippedForm] = []

    forms = {f.id: f for f in await repository.get_forms_by_ids(db, unique_ids)}
    for form_id in unique_ids:
        form = forms.get(form_id)
        if form is None:
            skipped.append(SkippedForm(form_id=form_id, reason="NOT_FOUND"))
        elif not await can_mutate(db, user, form):
            skipped.append(SkippedForm(form_id=form_id, reason="FORBIDDEN"))
        elif form.status != FormStatus.ACTIVE:
            skipped.append(SkippedForm(form_id=form_id, reason="NOT_ACTIVE"))
        else:
            remindable.append(form_id)

    if not remindable:
        return BulkRemindResponse(forms_processed=0, total_sent=0, total_errors=0, skipped=skipped)

    submissions = await repository.list_pending_submissions(db, remindable)
    groups, report = await deliver_reminders(db, submissions, datetime.now(UTC))

    logger.info(
        f"Bulk remind by {user.id}: {len(remindable)} form(s), {len(groups)} group(s), "
        f"{len(report.sent)} sent, {len(report.errors)} failed"
    )
    return BulkRemindResponse(
        forms_processed=len(remindable),
        total_sent=len(report.sent),
        total_errors=len(report.errors),
        skipped=skipped,
    )
