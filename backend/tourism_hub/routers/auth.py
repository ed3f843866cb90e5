"""Login and self-registration endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.auth import create_access_token
from tourism_hub.deps import _safe_error, get_current_user, get_db
from tourism_hub.errors import DomainError
from tourism_hub.models.db.user import User
from tourism_hub.models.user import (
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserProfile,
)
from tourism_hub.security import log_security_event, rate_limit_auth
from tourism_hub.services.user_service import UserService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["auth"])


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user),
        user=UserProfile.model_validate(user),
    )


@router.post("/auth/login", response_model=TokenResponse)
@rate_limit_auth()
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """Exchange email and password for a bearer token."""
    try:
        user = await UserService.authenticate(db, body.email, body.password)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("login", e),
        ) from e
    if user is None:
        log_security_event("auth_failure", request, {"email": body.email[:254]})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    logger.info("User %s logged in", user.id)
    return _token_response(user)


@router.post(
    "/auth/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
)
@rate_limit_auth()
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create a User or Tourism Player account and sign it in."""
    try:
        user = await UserService.register(
            db, body.email, body.password, body.name, role=body.role
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("registration", e),
        ) from e
    return _token_response(user)


@router.get("/me", response_model=UserProfile)
async def get_me(user: User = Depends(get_current_user)):
    return UserProfile.model_validate(user)
