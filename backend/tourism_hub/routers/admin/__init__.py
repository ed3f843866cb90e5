"""Admin router package -- aggregates all admin sub-routers."""

from fastapi import APIRouter

router = APIRouter(prefix="/api/v1", tags=["admin"])

from .users import router as users_router
from .notifications_admin import router as notifications_admin_router
from .monitoring import router as monitoring_router

router.include_router(users_router)
router.include_router(notifications_admin_router)
router.include_router(monitoring_router)
