"""Notifications admin endpoints -- broadcasts and the site banner."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import _safe_error, get_db, require_elevated_user
from tourism_hub.errors import DomainError
from tourism_hub.models.db.user import User
from tourism_hub.models.notification import (
    BannerRequest,
    BroadcastRequest,
    CountResponse,
    NotificationResponse,
)
from tourism_hub.services.notification_service import NotificationService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/admin/notifications/broadcast", response_model=CountResponse)
async def broadcast(
    body: BroadcastRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_elevated_user),
):
    """Send *message* to every account; returns the number of recipients."""
    try:
        count = await NotificationService.broadcast_to_all_users(
            db, current_user, body.message
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("broadcast", e),
        ) from e
    return CountResponse(count=count)


@router.put("/admin/banner", response_model=NotificationResponse)
async def set_banner(
    body: BannerRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_elevated_user),
):
    """Replace the site banner."""
    try:
        banner = await NotificationService.set_banner(
            db, current_user, body.message, body.expires_at
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("setting banner", e),
        ) from e
    return NotificationResponse.model_validate(banner)


@router.delete("/admin/banner/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_banner(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_elevated_user),
):
    try:
        await NotificationService.delete_global_notification(
            db, current_user, notification_id
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("deleting banner", e),
        ) from e
