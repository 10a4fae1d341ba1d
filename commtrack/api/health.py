"""
Health endpoints.

Readiness covers what commission calculation needs: the database the
app was started with and, when enabled, the scheduled backfill job.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from commtrack.config import settings
from commtrack.db import get_db
from commtrack.scheduler.jobs import BACKFILL_JOB_ID, scheduler
from commtrack.schemas.trace import ENGINE_VERSION

router = APIRouter(prefix="/health", tags=["Health"])


def backfill_status() -> dict:
    if not settings.backfill_enabled:
        return {"state": "disabled"}

    job = scheduler.get_job(BACKFILL_JOB_ID) if scheduler.running else None
    if job is None:
        return {"state": "not_scheduled"}
    return {
        "state": "scheduled",
        "interval_minutes": settings.backfill_interval_minutes,
        "next_run_at": job.next_run_time.isoformat() if job.next_run_time else None,
    }


@router.get("")
async def health_check():
    return {"status": "healthy", "service": "commtrack", "engine_version": ENGINE_VERSION}


@router.get("/ready")
async def readiness_check(response: Response, db: AsyncSession = Depends(get_db)):
    """
    Ready when the database answers. A backfill that should be scheduled
    but is not makes the service degraded, not unready: sales are still
    calculated as they are recorded.
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready", "database": f"error: {e}"}

    backfill = backfill_status()
    return {
        "status": "degraded" if backfill["state"] == "not_scheduled" else "ready",
        "database": "connected",
        "backfill": backfill,
    }


@router.get("/live")
async def liveness_check():
    return {"status": "alive"}
