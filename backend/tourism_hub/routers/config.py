"""Runtime site configuration (maintenance mode, dashboard banner)."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import _safe_error, get_current_user, get_db
from tourism_hub.errors import DomainError
from tourism_hub.models.config import SiteConfig, SiteConfigUpdate
from tourism_hub.models.db.user import User
from tourism_hub.services.config_service import ConfigService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["config"])


@router.get("/config", response_model=SiteConfig)
async def get_site_config(db: AsyncSession = Depends(get_db)):
    """Public; served from a short-lived in-process cache."""
    try:
        return SiteConfig(**await ConfigService.get_site_config(db))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("loading site config", e),
        ) from e


@router.patch("/config", response_model=SiteConfig)
async def update_site_config(
    body: SiteConfigUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        config = await ConfigService.update_site_config(
            db, user, body.model_dump(exclude_unset=True)
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("updating site config", e),
        ) from e
    return SiteConfig(**config)
