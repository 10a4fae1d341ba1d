"""
commtrack - Sales Commission Tracking Service

Main FastAPI application with:
- Commission plans and rules
- Sales transactions with automatic commission calculation
- Approval workflow, adjustments and commission explanations
- Scheduled backfill of missing commissions
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from commtrack.api import api_router
from commtrack.config import settings
from commtrack.db import Database
from commtrack.scheduler import scheduler, setup_scheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Opens the database
    - Starts the backfill scheduler when enabled

    Shutdown:
    - Stops the scheduler and disposes the database engine
    """
    logger.info("Starting commtrack...")

    database = Database(settings.database_url, echo=not settings.is_production)
    app.state.db = database

    if settings.backfill_enabled:
        setup_scheduler(database)
        scheduler.start()
        logger.info(
            f"Commission backfill scheduled every {settings.backfill_interval_minutes} minutes"
        )

    logger.info("commtrack started successfully!")

    yield

    # Shutdown
    logger.info("Shutting down commtrack...")
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await database.dispose()


# Create FastAPI application
app = FastAPI(
    title="commtrack",
    description="Sales Commission Tracking Service",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# Include routers
app.include_router(api_router)  # /api/* endpoints


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "commtrack.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
    )
