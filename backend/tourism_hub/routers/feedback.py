"""Site feedback: public submission, staff triage."""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import _safe_error, get_current_user, get_db, get_optional_user
from tourism_hub.errors import DomainError
from tourism_hub.models.db.user import User
from tourism_hub.models.feedback import (
    FeedbackCreate,
    FeedbackResponse,
    FeedbackStatus,
    FeedbackStatusUpdate,
)
from tourism_hub.services.feedback_service import FeedbackService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["feedback"])


@router.post(
    "/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED
)
async def submit_feedback(
    body: FeedbackCreate,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    """Anonymous submissions are accepted without a token."""
    try:
        feedback = await FeedbackService.submit(
            db, body.content, body.is_anonymous, body.page_context, user=user
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("submitting feedback", e),
        ) from e
    return FeedbackResponse.model_validate(feedback)


@router.get("/feedback", response_model=list[FeedbackResponse])
async def list_feedback(
    status_filter: Optional[FeedbackStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        items = await FeedbackService.list_feedback(db, user, status=status_filter)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing feedback", e),
        ) from e
    return [FeedbackResponse.model_validate(f) for f in items]


@router.patch("/feedback/{feedback_id}", response_model=FeedbackResponse)
async def update_feedback_status(
    feedback_id: uuid.UUID,
    body: FeedbackStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        feedback = await FeedbackService.update_status(db, user, feedback_id, body.status)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("updating feedback", e),
        ) from e
    return FeedbackResponse.model_validate(feedback)
