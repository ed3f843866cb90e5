"""Itinerary ORM models (``itineraries`` and ``itinerary_items``)."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tourism_hub.models.db.base import Base, UuidPkMixin, utcnow

__all__ = ["Itinerary", "ItineraryItem"]


class Itinerary(UuidPkMixin, Base):
    __tablename__ = "itineraries"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, unique=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class ItineraryItem(UuidPkMixin, Base):
    __tablename__ = "itinerary_items"
    __table_args__ = (
        UniqueConstraint("itinerary_id", "item_id", name="uq_itinerary_item"),
    )

    itinerary_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("itineraries.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[str] = mapped_column(Text, nullable=False)
    item_type: Mapped[str] = mapped_column(Text, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
