"""
Background Job Scheduler

APScheduler (AsyncIOScheduler) wrapper used by the lifespan in main.py.

Jobs are registered by the feature modules at startup, scheduled when the
scheduler starts, and can also be run on demand from the /debug/jobs
endpoints. Every job must be safe to run twice: the reminder job stamps
what it sent so a second run in the same window sends nothing.
"""

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]

# A missed run is still executed if it is at most this late
MISFIRE_GRACE_SECONDS = 300


@dataclass
class ScheduledJob:
    func: JobFunc
    trigger: BaseTrigger
    description: str = ""
    last_run_at: datetime | None = None
    last_error: str | None = None

    def mark_run(self, error: BaseException | str | None = None) -> None:
        self.last_run_at = datetime.now(UTC)
        self.last_error = str(error) if error else None


_scheduler: AsyncIOScheduler | None = None
_jobs: dict[str, ScheduledJob] = {}


def _on_job_event(event: JobExecutionEvent) -> None:
    job = _jobs.get(event.job_id)
    if job:
        job.mark_run(event.exception)
    if event.exception:
        logger.error(f"Job {event.job_id} failed: {event.exception}", exc_info=event.exception)
    else:
        logger.info(f"Job {event.job_id} finished")


def _schedule(job_id: str, job: ScheduledJob) -> None:
    # Coalesce missed runs and never overlap two runs of the same job
    _scheduler.add_job(
        job.func,
        trigger=job.trigger,
        id=job_id,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=MISFIRE_GRACE_SECONDS,
    )


def register_job(job_id: str, func: JobFunc, trigger: BaseTrigger, description: str = "") -> None:
    """
    Register a job under a stable id.

    Registering before start_scheduler() defers scheduling to startup.
    Registering an id twice replaces the earlier job.
    """
    _jobs[job_id] = ScheduledJob(func=func, trigger=trigger, description=description)
    if _scheduler is not None:
        _schedule(job_id, _jobs[job_id])
    logger.debug(f"Registered job {job_id}")


async def start_scheduler() -> AsyncIOScheduler:
    """Create the scheduler, schedule every registered job and start it."""
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running")
        return _scheduler

    _scheduler = AsyncIOScheduler(timezone="UTC")
    _scheduler.add_listener(_on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    for job_id, job in _jobs.items():
        _schedule(job_id, job)
    _scheduler.start()

    logger.info(f"Scheduler started with {len(_jobs)} job(s)")
    return _scheduler


async def stop_scheduler() -> None:
    """Shut the scheduler down, waiting for running jobs to finish."""
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
    _scheduler = None


async def trigger_job_manually(job_id: str) -> dict[str, Any]:
    """
    Run a registered job now, outside the schedule.

    A failing job is reported in the result rather than raised.

    Raises:
        ValueError: If no job is registered under job_id
    """
    job = _jobs.get(job_id)
    if job is None:
        raise ValueError(f"Job {job_id} not found. Registered jobs: {sorted(_jobs)}")

    logger.info(f"Manually triggering job: {job_id}")
    outcome: dict[str, Any] = {"job_id": job_id}
    try:
        outcome["result"] = await job.func()
        outcome["status"] = "success"
        job.mark_run()
    except Exception as e:
        logger.error(f"Manual run of {job_id} failed: {e}", exc_info=True)
        outcome["status"] = "error"
        outcome["error"] = str(e)
        job.mark_run(e)

    outcome["executed_at"] = job.last_run_at.isoformat()
    return outcome


def list_registered_jobs() -> list[dict[str, Any]]:
    """Describe every registered job, with its next run time once scheduled."""
    listing = []
    for job_id, job in _jobs.items():
        entry: dict[str, Any] = {
            "job_id": job_id,
            "description": job.description,
            "last_run_at": job.last_run_at.isoformat() if job.last_run_at else None,
            "last_error": job.last_error,
        }
        scheduled = _scheduler.get_job(job_id) if _scheduler is not None else None
        if scheduled is not None:
            next_run = scheduled.next_run_time
            entry["next_run_time"] = next_run.isoformat() if next_run else None
            entry["is_paused"] = next_run is None
        listing.append(entry)
    return listing


def _set_paused(job_id: str, paused: bool) -> bool:
    if _scheduler is None or _scheduler.get_job(job_id) is None:
        logger.warning(f"Job {job_id} is not scheduled")
        return False
    if paused:
        _scheduler.pause_job(job_id)
    else:
        _scheduler.resume_job(job_id)
    logger.info(f"Job {job_id} {'paused' if paused else 'resumed'}")
    return True


def pause_job(job_id: str) -> bool:
    """Pause a scheduled job. Returns False if it is not scheduled."""
    return _set_paused(job_id, True)


def resume_job(job_id: str) -> bool:
    """Resume a paused job. Returns False if it is not scheduled."""
    return _set_paused(job_id, False)
