"""API router aggregation."""

from fastapi import APIRouter

from commtrack.api.commissions import router as commissions_router
from commtrack.api.health import router as health_router
from commtrack.api.plans import router as plans_router
from commtrack.api.sales import router as sales_router

# Main API router (for /api/* endpoints)
api_router = APIRouter(prefix="/api")

api_router.include_router(health_router)
api_router.include_router(plans_router)
api_router.include_router(sales_router)
api_router.include_router(commissions_router)

__all__ = ["api_router"]
