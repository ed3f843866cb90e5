"""Personal trip itinerary: one per user, items are clusters or events."""

import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import ConflictOrDuplicate, NotFound
from tourism_hub.models.db.itinerary import Itinerary, ItineraryItem
from tourism_hub.models.db.user import User
from tourism_hub.realtime import record_change
from tourism_hub.services.access_control import require_user

logger = logging.getLogger(__name__)

DEFAULT_ITINERARY_NAME = "My Sarawak Trip"


class ItineraryService:

    @staticmethod
    async def find_or_create(db: AsyncSession, user: Optional[User]) -> Itinerary:
        user = require_user(user, "Loading itinerary")
        result = await db.execute(select(Itinerary).where(Itinerary.user_id == user.id))
        itinerary = result.scalar_one_or_none()
        if itinerary is None:
            itinerary = Itinerary(user_id=user.id, name=DEFAULT_ITINERARY_NAME)
            db.add(itinerary)
            await db.flush()
        return itinerary

    @staticmethod
    async def get_my_itinerary(
        db: AsyncSession, user: Optional[User]
    ) -> tuple[Itinerary, list[ItineraryItem]]:
        itinerary = await ItineraryService.find_or_create(db, user)
        result = await db.execute(
            select(ItineraryItem)
            .where(ItineraryItem.itinerary_id == itinerary.id)
            .order_by(ItineraryItem.created_at)
        )
        return itinerary, list(result.scalars().all())

    @staticmethod
    async def add_item(
        db: AsyncSession,
        user: Optional[User],
        item_id: str,
        item_type: str,
        item_name: str,
    ) -> ItineraryItem:
        action = "Adding to itinerary"
        itinerary = await ItineraryService.find_or_create(db, user)
        existing = await db.execute(
            select(ItineraryItem.id).where(
                ItineraryItem.itinerary_id == itinerary.id,
                ItineraryItem.item_id == item_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictOrDuplicate(
                f'"{item_name}" is already in your itinerary', action=action
            )
        item = ItineraryItem(
            itinerary_id=itinerary.id,
            item_id=item_id,
            item_type=item_type,
            item_name=item_name,
        )
        db.add(item)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictOrDuplicate(
                f'"{item_name}" is already in your itinerary', action=action
            ) from exc
        return item

    @staticmethod
    async def remove_item(db: AsyncSession, user: Optional[User], item_id: str) -> None:
        action = "Removing from itinerary"
        itinerary = await ItineraryService.find_or_create(db, user)
        result = await db.execute(
            select(ItineraryItem).where(
                ItineraryItem.itinerary_id == itinerary.id,
                ItineraryItem.item_id == item_id,
            )
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFound("Item is not in your itinerary", action=action)
        await db.delete(item)
        await db.flush()

    @staticmethod
    async def clear(db: AsyncSession, user: Optional[User]) -> int:
        itinerary = await ItineraryService.find_or_create(db, user)
        result = await db.execute(
            delete(ItineraryItem).where(ItineraryItem.itinerary_id == itinerary.id)
        )
        if result.rowcount:
            record_change(db, "itinerary_items", "delete")
        logger.info("Cleared %d itinerary items for %s", result.rowcount, user.id)
        return result.rowcount or 0
