"""API Routes module"""
from fastapi import APIRouter

from .rules import router as rules_router
from .notifications import router as notifications_router
from .engine import router as engine_router

# Main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(rules_router, prefix="/rules", tags=["Rules"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(engine_router, prefix="/engine", tags=["Engine"])

__all__ = ["api_router"]
