"""User management admin endpoints.

Listing and editing accounts (name, role, tier).  The router requires an
Admin or Editor token; the service additionally refuses Admin grants and
revocations from anyone but an Admin.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import _safe_error, get_db, require_elevated_user
from tourism_hub.errors import DomainError
from tourism_hub.models.db.user import User
from tourism_hub.models.user import UserUpdate
from tourism_hub.routers.admin._helpers import _user_dict
from tourism_hub.services.user_service import UserService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/admin/users")
async def list_users(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_elevated_user),
):
    try:
        users = await UserService.list_users(db, current_user)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing users", e),
        ) from e
    return {"users": [_user_dict(u) for u in users], "total": len(users)}


@router.patch("/admin/users/{user_id}")
async def edit_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_elevated_user),
):
    try:
        user = await UserService.edit_user(
            db, current_user, user_id, body.model_dump(exclude_unset=True)
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("editing user", e),
        ) from e
    logger.info("User %s edited by %s", user_id, current_user.id)
    return _user_dict(user)
