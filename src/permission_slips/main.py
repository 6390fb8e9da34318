"""
Permission Slips API - application entry point.

Wires logging, the database, Redis, the reminder scheduler, CORS and the
/api/v1 routers into one FastAPI app. Operational endpoints (health,
readiness and the /debug/* job controls) live here as well.
"""

import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

import permission_slips.models  # noqa: F401  (registers every table and mapper)
from permission_slips.api import api_router
from permission_slips.core.auth import CurrentUser
from permission_slips.core.config import settings
from permission_slips.core.database import async_session_maker, close_db, init_db
from permission_slips.core.logging import setup_logging
from permission_slips.core.permissions import Operation, require_permission
from permission_slips.core.redis import close_redis, init_redis, redis_status
from permission_slips.core.scheduler import (
    list_registered_jobs,
    pause_job,
    resume_job,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from permission_slips.modules.forms import register_form_jobs

logger = logging.getLogger(__name__)


async def _start_jobs() -> None:
    register_form_jobs()
    await start_scheduler()


async def _run_startup_step(name: str, step: Callable[[], Awaitable[object]]) -> None:
    """Run one startup step. Outside production a failure is logged and skipped."""
    try:
        await step()
        logger.info(f"{name}: ready")
    except Exception:
        logger.exception(f"{name}: failed to start")
        if settings.is_production:
            raise


@asynccontextmanager
async def lifespan(_app: FastAPI):
    setup_logging()
    logger.info(f"Starting Permission Slips API ({settings.python_env})")

    # Without Redis, rate limits are counted in memory
    await _run_startup_step("redis", init_redis)
    await _run_startup_step("database", init_db)
    await _run_startup_step("scheduler", _start_jobs)

    yield

    logger.info("Shutting down Permission Slips API")
    await stop_scheduler()
    await close_redis()
    await close_db()


async def _database_ok() -> None:
    async with async_session_maker() as session:
        await session.execute(text("SELECT 1"))


app = FastAPI(
    title="Permission Slips API",
    description="Digital permission slips for schools: authoring, review, distribution and signing",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness probe. Touches no dependency."""
    return {"status": "healthy", "environment": settings.python_env}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Ready once the database answers. Redis is reported but not required."""
    try:
        await _database_ok()
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail={"error": "DATABASE_UNAVAILABLE", "message": str(e)},
        ) from e
    redis = await redis_status()
    return {"status": "ready", "rate_limit_backend": redis["rate_limit_backend"]}


# Operational controls, limited to super admins by the JOBS_TRIGGER operation
debug_router = APIRouter(
    prefix="/debug",
    tags=["Debug"],
    dependencies=[Depends(require_permission(Operation.JOBS_TRIGGER))],
)


@debug_router.get("/db")
async def debug_db():
    try:
        await _database_ok()
    except Exception as e:
        return {"database": "error", "message": str(e)}
    return {"database": "connected"}


@debug_router.get("/redis")
async def debug_redis():
    return await redis_status()


@debug_router.get("/jobs")
async def list_jobs():
    """Registered jobs with their last run, last error and next run time."""
    return {"jobs": list_registered_jobs()}


@debug_router.post("/jobs/{job_id}/trigger")
async def trigger_job(job_id: str, user: CurrentUser = Depends(require_permission(Operation.JOBS_TRIGGER))):
    """
    Run a job now, e.g. forms_send_deadline_reminders.

    Raises:
        HTTPException 400: JOB_NOT_FOUND
    """
    logger.info(f"Job {job_id} triggered by {user.id}")
    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "JOB_NOT_FOUND", "message": str(e)},
        ) from e


@debug_router.post("/jobs/{job_id}/pause")
async def pause_job_endpoint(job_id: str):
    return {"job_id": job_id, "paused": pause_job(job_id)}


@debug_router.post("/jobs/{job_id}/resume")
async def resume_job_endpoint(job_id: str):
    return {"job_id": job_id, "resumed": resume_job(job_id)}


app.include_router(debug_router)
