"""Feedback ORM model (``feedback`` table)."""

import uuid
from typing import Optional

from sqlalchemy import Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tourism_hub.models.db.base import Base, TimestampMixin, UuidPkMixin

__all__ = ["Feedback"]


class Feedback(UuidPkMixin, TimestampMixin, Base):
    __tablename__ = "feedback"

    content: Mapped[str] = mapped_column(Text, nullable=False)
    page_context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    user_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="new")
