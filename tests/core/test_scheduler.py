"""
Unit tests for job registration and manual triggering.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from permission_slips.core import scheduler


@pytest.fixture(autouse=True)
def isolated_registry():
    saved = dict(scheduler._jobs)
    scheduler._jobs.clear()
    yield
    scheduler._jobs.clear()
    scheduler._jobs.update(saved)


def test_register_before_start_is_deferred():
    job = AsyncMock(return_value=None)

    scheduler.register_job("nightly", job, IntervalTrigger(hours=1), description="Nightly sweep")

    assert scheduler.list_registered_jobs() == [
        {
            "job_id": "nightly",
            "description": "Nightly sweep",
            "last_run_at": None,
            "last_error": None,
        }
    ]


@pytest.mark.asyncio
async def test_trigger_returns_job_result():
    job = AsyncMock(return_value={"remindersSent": 4})
    scheduler.register_job("reminders", job, IntervalTrigger(hours=1))

    result = await scheduler.trigger_job_manually("reminders")

    job.assert_awaited_once()
    assert result["job_id"] == "reminders"
    assert result["status"] == "success"
    assert result["result"] == {"remindersSent": 4}
    assert scheduler.list_registered_jobs()[0]["last_run_at"] == result["executed_at"]


@pytest.mark.asyncio
async def test_trigger_reports_job_error():
    job = AsyncMock(side_effect=RuntimeError("db down"))
    scheduler.register_job("reminders", job, IntervalTrigger(hours=1))

    result = await scheduler.trigger_job_manually("reminders")

    assert result["status"] == "error"
    assert result["error"] == "db down"
    assert scheduler.list_registered_jobs()[0]["last_error"] == "db down"


@pytest.mark.asyncio
async def test_trigger_unknown_job():
    with pytest.raises(ValueError):
        await scheduler.trigger_job_manually("nope")


def test_pause_without_scheduler():
    assert scheduler.pause_job("nightly") is False


def test_pause_and_resume_scheduled_job():
    running = MagicMock()
    running.get_job.return_value = MagicMock(next_run_time=None)

    with patch.object(scheduler, "_scheduler", running):
        assert scheduler.pause_job("reminders") is True
        assert scheduler.resume_job("reminders") is True

    running.pause_job.assert_called_once_with("reminders")
    running.resume_job.assert_called_once_with("reminders")


def test_scheduler_event_records_failure():
    scheduler.register_job("reminders", AsyncMock(), IntervalTrigger(hours=1))
    event = MagicMock(job_id="reminders", exception=RuntimeError("smtp down"))

    scheduler._on_job_event(event)

    assert scheduler._jobs["reminders"].last_error == "smtp down"
    assert scheduler._jobs["reminders"].last_run_at is not None
