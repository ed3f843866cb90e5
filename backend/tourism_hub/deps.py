"""Shared dependencies for all Tourism Hub API routers.

Centralises authentication, the per-application handles created in the
lifespan (storage, AI service, change feed, state cache), the rate
limiter reference and small helpers so that every router module can
``from tourism_hub.deps import ...`` without importing ``main``.
"""

import logging
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.auth import decode_access_token
from tourism_hub.database import get_db
from tourism_hub.models.db.user import User
from tourism_hub.realtime import ChangeFeed
from tourism_hub.security import get_rate_limiter, log_security_event
from tourism_hub.services.access_control import is_admin, is_elevated
from tourism_hub.services.ai_service import AiService
from tourism_hub.state import AppState
from tourism_hub.storage import BlobStorage

logger = logging.getLogger(__name__)

__all__ = [
    "get_db",
    "get_current_user",
    "get_optional_user",
    "require_elevated_user",
    "require_admin_user",
    "get_storage",
    "get_ai_service",
    "get_change_feed",
    "get_app_state",
    "limiter",
    "_safe_error",
]

# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------
limiter = get_rate_limiter()

# ---------------------------------------------------------------------------
# HTTPBearer security scheme
# ---------------------------------------------------------------------------
security = HTTPBearer(auto_error=False)


def _safe_error(operation: str, e: Exception) -> str:
    """Log the full exception but return a safe message without internal details."""
    logger.exception("Error during %s", operation)
    return f"{operation} failed. Please try again or contact support."


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------


async def _resolve_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    db: AsyncSession,
) -> Optional[User]:
    if credentials is None or not credentials.credentials:
        return None
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        log_security_event("auth_invalid_token", request)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        log_security_event("auth_invalid_token_payload", request)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    user = await db.get(User, user_id)
    if user is None:
        log_security_event("auth_unknown_user", request, {"user_id": str(user_id)})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the Bearer JWT to a ``User`` row or fail with 401."""
    user = await _resolve_user(request, credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Like :func:`get_current_user` but anonymous requests get ``None``."""
    return await _resolve_user(request, credentials, db)


async def require_elevated_user(user: User = Depends(get_current_user)) -> User:
    if not is_elevated(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin or Editor role required",
        )
    return user


async def require_admin_user(user: User = Depends(get_current_user)) -> User:
    if not is_admin(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user


# ---------------------------------------------------------------------------
# Application handles (created in the lifespan)
# ---------------------------------------------------------------------------


def get_storage(request: Request) -> BlobStorage:
    return request.app.state.storage


def get_ai_service(request: Request) -> AiService:
    return request.app.state.ai_service


def get_change_feed(request: Request) -> ChangeFeed:
    return request.app.state.change_feed


def get_app_state(request: Request) -> Optional[AppState]:
    """The state cache, or ``None`` when disabled by configuration."""
    return getattr(request.app.state, "app_state", None)
