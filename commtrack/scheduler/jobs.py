"""
Background job definitions using APScheduler.

Jobs include:
- Missing commission backfill
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from commtrack.config import settings
from commtrack.db import Database
from commtrack.services.backfill import recalculate_missing_commissions

logger = logging.getLogger(__name__)

BACKFILL_JOB_ID = "commission_backfill"

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def commission_backfill_job(database: Database):
    """Calculate commissions for sales that do not have one yet."""
    logger.debug("Running commission backfill job")
    try:
        async with database.session() as db:
            summary = await recalculate_missing_commissions(db)
            if summary.processed:
                logger.info(
                    f"Commission backfill job: {summary.succeeded} calculated, "
                    f"{summary.skipped} skipped, {summary.errored} errored"
                )
    except Exception as e:
        logger.error(f"Commission backfill job error: {e}")


def setup_scheduler(database: Database):
    """
    Configure and add all scheduled jobs.

    Called during application startup.
    """
    scheduler.add_job(
        commission_backfill_job,
        trigger=IntervalTrigger(minutes=settings.backfill_interval_minutes),
        args=[database],
        id="commission_backfill",
        name="Backfill missing commissions",
        replace_existing=True,
    )

    logger.info("Scheduler configured with jobs")
