"""Events calendar router."""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import (
    _safe_error,
    get_app_state,
    get_current_user,
    get_db,
    get_storage,
)
from tourism_hub.errors import DomainError
from tourism_hub.models.db.user import User
from tourism_hub.models.event import EventCreate, EventResponse, EventUpdate
from tourism_hub.services.event_service import EventService
from tourism_hub.state import AppState
from tourism_hub.storage import BlobStorage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["events"])


@router.get("/events", response_model=list[EventResponse])
async def list_events(
    year: Optional[int] = Query(None, ge=1900, le=2200),
    db: AsyncSession = Depends(get_db),
    app_state: Optional[AppState] = Depends(get_app_state),
):
    """Public list ordered by start date, optionally limited to one year."""
    try:
        if year is None and app_state is not None:
            return [EventResponse.model_validate(r) for r in app_state.events()]
        events = await EventService.list_events(db, year=year)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing events", e),
        ) from e
    return [EventResponse.model_validate(e) for e in events]


@router.get("/events/{event_id}", response_model=EventResponse)
async def get_event(event_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    try:
        event = await EventService.get_event(db, event_id)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("fetching event", e),
        ) from e
    return EventResponse.model_validate(event)


@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    body: EventCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        event = await EventService.create_event(db, user, body)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("creating event", e),
        ) from e
    return EventResponse.model_validate(event)


@router.patch("/events/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: uuid.UUID,
    body: EventUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: BlobStorage = Depends(get_storage),
):
    try:
        event = await EventService.update_event(db, user, event_id, body, storage=storage)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("updating event", e),
        ) from e
    return EventResponse.model_validate(event)


@router.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: BlobStorage = Depends(get_storage),
):
    try:
        await EventService.delete_event(db, user, event_id, storage=storage)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("deleting event", e),
        ) from e
