"""
Forms Background Jobs

Scheduled deadline reminders for parents who have not signed yet.

Design Principles:
- The job handles its own database session
- Grouping, sending and stamping live in reminders.deliver_reminders
- Each submission is reminded at most once per REMINDER_INTERVAL_HOURS,
  so the hourly schedule does not spam parents

Schedule:
- Runs hourly; can also be triggered manually via the debug jobs endpoint
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from permission_slips.core.config import settings
from permission_slips.core.database import async_session_maker
from permission_slips.core.scheduler import register_job
from permission_slips.modules.forms import repository
from permission_slips.modules.forms.reminders import deliver_reminders

logger = logging.getLogger(__name__)

REMINDER_INTERVAL_HOURS = 24

# Job ID for registration and manual triggering
JOB_ID_SEND_REMINDERS = "forms_send_deadline_reminders"


async def send_deadline_reminders() -> dict[str, Any]:
    """
    Remind parents about unsigned forms whose deadline is near.

    Finds PENDING submissions on ACTIVE forms with reminders enabled and a
    deadline within the next `settings.reminder_window_days` days, groups
    them per parent and form, and emails each group once.

    Returns:
        Dict with executed_at, total (groups), sent and errors
    """
    executed_at = datetime.now(UTC)
    window_end = executed_at + timedelta(days=settings.reminder_window_days)
    reminded_before = executed_at - timedelta(hours=REMINDER_INTERVAL_HOURS)

    logger.info(f"Starting deadline reminder job (deadlines before {window_end.isoformat()})")

    async with async_session_maker() as db:
        submissions = await repository.get_pending_for_reminders(
            db, executed_at, window_end, reminded_before
        )
        logger.info(f"Found {len(submissions)} pending submission(s)")
        groups, report = await deliver_reminders(db, submissions, executed_at)

    results = {
        "executed_at": executed_at.isoformat(),
        "total": len(groups),
        "sent": len(report.sent),
        "errors": len(report.errors),
    }
    logger.info(
        f"Deadline reminder job completed. Sent: {results['sent']}, Errors: {results['errors']}"
    )
    return results


def register_form_jobs() -> None:
    """
    Register forms background jobs with the scheduler.

    Call during application startup, before the scheduler is started.
    """
    register_job(
        job_id=JOB_ID_SEND_REMINDERS,
        func=send_deadline_reminders,
        trigger=IntervalTrigger(hours=1),
        description="Email parents whose slips are still unsigned close to the deadline",
    )
