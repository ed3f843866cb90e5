"""Health-check router."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from tourism_hub import __version__

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/")
async def root():
    """Health check"""
    return {"status": "ok", "message": "Tourism Hub API is running"}


@router.get("/api/v1/health")
async def health_check(request: Request):
    """Detailed health check with optional-service degradation status."""
    state = request.app.state
    capabilities = ["grants", "clusters", "events", "notifications"]
    degraded = []

    storage = getattr(state, "storage", None)
    if storage is not None and storage.configured:
        capabilities.append("blob_storage")
    else:
        degraded.append("blob_storage")

    ai_service = getattr(state, "ai_service", None)
    if ai_service is not None and ai_service.available:
        capabilities.append("ai_completion")
    else:
        degraded.append("ai_completion")

    app_state = getattr(state, "app_state", None)
    if app_state is not None:
        capabilities.append("state_cache")

    return {
        "status": "degraded" if degraded else "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "capabilities": capabilities,
        "degraded": degraded,
    }
