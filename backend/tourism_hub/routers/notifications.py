"""Per-user notification inbox and the public site banner."""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import _safe_error, get_current_user, get_db
from tourism_hub.errors import DomainError
from tourism_hub.models.db.notification import Notification
from tourism_hub.models.db.user import User
from tourism_hub.models.notification import (
    CountResponse,
    NotificationListResponse,
    NotificationResponse,
)
from tourism_hub.services.notification_service import NotificationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["notifications"])


def _to_response(notification: Notification, user: Optional[User]) -> NotificationResponse:
    response = NotificationResponse.model_validate(notification)
    if user is not None:
        response.is_read = str(user.id) in (notification.read_by or [])
    return response


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Visible, unexpired notifications for the caller, newest first."""
    try:
        notifications = await NotificationService.list_for_user(db, user)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing notifications", e),
        ) from e
    items = [_to_response(n, user) for n in notifications]
    return NotificationListResponse(
        notifications=items,
        unread_count=sum(1 for n in items if not n.is_read),
    )


@router.post(
    "/notifications/{notification_id}/read", response_model=NotificationResponse
)
async def mark_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        notification = await NotificationService.mark_read(db, notification_id, user)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("marking notification read", e),
        ) from e
    return _to_response(notification, user)


@router.post("/notifications/read-all", response_model=CountResponse)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        count = await NotificationService.mark_all_read(db, user)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("marking notifications read", e),
        ) from e
    return CountResponse(count=count)


@router.post("/notifications/clear", response_model=CountResponse)
async def clear_all(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        count = await NotificationService.clear_all(db, user)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("clearing notifications", e),
        ) from e
    return CountResponse(count=count)


@router.get("/banner", response_model=Optional[NotificationResponse])
async def get_banner(db: AsyncSession = Depends(get_db)):
    """Public: the current unexpired site banner, or null."""
    try:
        banner = await NotificationService.get_active_banner(db)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("fetching banner", e),
        ) from e
    return _to_response(banner, None) if banner is not None else None
