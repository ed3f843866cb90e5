"""The caller's saved trip ("My Sarawak Trip")."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import _safe_error, get_current_user, get_db
from tourism_hub.errors import DomainError
from tourism_hub.models.db.user import User
from tourism_hub.models.itinerary import (
    ItineraryItemCreate,
    ItineraryItemResponse,
    ItineraryResponse,
)
from tourism_hub.models.notification import CountResponse
from tourism_hub.services.itinerary_service import ItineraryService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["itinerary"])


async def _itinerary_response(db: AsyncSession, user: User) -> ItineraryResponse:
    itinerary, items = await ItineraryService.get_my_itinerary(db, user)
    return ItineraryResponse(
        id=str(itinerary.id),
        name=itinerary.name,
        items=[ItineraryItemResponse.model_validate(i) for i in items],
    )


@router.get("/me/itinerary", response_model=ItineraryResponse)
async def get_my_itinerary(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """The caller's itinerary, created on first access."""
    try:
        response = await _itinerary_response(db, user)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("loading itinerary", e),
        ) from e
    return response


@router.post(
    "/me/itinerary/items",
    response_model=ItineraryItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_item(
    body: ItineraryItemCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        item = await ItineraryService.add_item(
            db, user, body.item_id, body.item_type, body.item_name
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("adding itinerary item", e),
        ) from e
    return ItineraryItemResponse.model_validate(item)


@router.delete("/me/itinerary/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_item(
    item_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        await ItineraryService.remove_item(db, user, item_id)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("removing itinerary item", e),
        ) from e


@router.delete("/me/itinerary/items", response_model=CountResponse)
async def clear_itinerary(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        count = await ItineraryService.clear(db, user)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("clearing itinerary", e),
        ) from e
    return CountResponse(count=count)
