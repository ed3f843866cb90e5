"""Business logic for tourism events."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import NotFound, ValidationFailure
from tourism_hub.models.db.base import as_utc
from tourism_hub.models.db.event import Event
from tourism_hub.models.db.user import User
from tourism_hub.models.event import EventCreate, EventUpdate
from tourism_hub.services.access_control import (
    require_content_creator,
    require_owner_or_elevated,
)
from tourism_hub.storage import (
    EVENT_IMAGE_BUCKET,
    BlobStorage,
    object_path_from_public_url,
)

logger = logging.getLogger(__name__)


def _year_bounds(year: int) -> tuple[datetime, datetime]:
    return (
        datetime(year, 1, 1, tzinfo=timezone.utc),
        datetime(year + 1, 1, 1, tzinfo=timezone.utc),
    )


class EventService:
    """Service layer for event CRUD."""

    @staticmethod
    async def list_events(
        db: AsyncSession, year: Optional[int] = None
    ) -> list[Event]:
        query = select(Event).order_by(Event.start_date)
        if year is not None:
            start, end = _year_bounds(year)
            query = query.where(Event.start_date >= start, Event.start_date < end)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_event(db: AsyncSession, event_id: uuid.UUID) -> Event:
        event = await db.get(Event, event_id)
        if event is None:
            raise NotFound("Event not found", action="Fetching event")
        return event

    @staticmethod
    async def create_event(
        db: AsyncSession, actor: Optional[User], data: EventCreate
    ) -> Event:
        actor = require_content_creator(actor, "Adding event")
        values = data.model_dump()
        values["start_date"] = as_utc(values["start_date"])
        values["end_date"] = as_utc(values["end_date"])
        event = Event(created_by=actor.id, **values)
        db.add(event)
        await db.flush()
        logger.info("Event %s created by %s", event.id, actor.id)
        return event

    @staticmethod
    async def update_event(
        db: AsyncSession,
        actor: Optional[User],
        event_id: uuid.UUID,
        data: EventUpdate,
        storage: Optional[BlobStorage] = None,
    ) -> Event:
        action = "Updating event"
        event = await EventService.get_event(db, event_id)
        require_owner_or_elevated(actor, event.created_by, action)

        changes = data.model_dump(exclude_unset=True)
        for key in ("start_date", "end_date"):
            if key in changes:
                changes[key] = as_utc(changes[key])
        start = as_utc(changes.get("start_date", event.start_date))
        end = as_utc(changes.get("end_date", event.end_date))
        if end is not None and start is not None and end < start:
            raise ValidationFailure(
                "end_date must not be before start_date", action=action
            )

        old_image = event.image
        for key, value in changes.items():
            setattr(event, key, value)
        await db.flush()

        if "image" in changes and old_image and changes["image"] != old_image:
            path = object_path_from_public_url(old_image, EVENT_IMAGE_BUCKET)
            if storage is not None and path:
                await storage.remove_quietly(EVENT_IMAGE_BUCKET, [path])
        return event

    @staticmethod
    async def delete_event(
        db: AsyncSession,
        actor: Optional[User],
        event_id: uuid.UUID,
        storage: Optional[BlobStorage] = None,
    ) -> None:
        action = "Deleting event"
        event = await EventService.get_event(db, event_id)
        require_owner_or_elevated(actor, event.created_by, action)
        image = event.image
        await db.delete(event)
        await db.flush()
        logger.info("Event %s deleted by %s", event_id, actor.id)

        path = object_path_from_public_url(image, EVENT_IMAGE_BUCKET)
        if storage is not None and path:
            await storage.remove_quietly(EVENT_IMAGE_BUCKET, [path])

    @staticmethod
    async def latest_update_for_year(
        db: AsyncSession, year: int
    ) -> Optional[datetime]:
        """Most recent ``updated_at`` among events starting in *year*."""
        start, end = _year_bounds(year)
        result = await db.execute(
            select(func.max(Event.updated_at)).where(
                Event.start_date >= start, Event.start_date < end
            )
        )
        return as_utc(result.scalar())
