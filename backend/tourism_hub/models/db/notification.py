"""Notification ORM model.

Maps to the ``notifications`` table.  ``recipient_id`` holds either a
user id (as text) or one of the broadcast classes ``admins``,
``grant_admins`` or ``global_banner``.  ``read_by`` and ``cleared_by``
are JSON lists of user id strings that only ever grow.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tourism_hub.models.db.base import Base, JSONType, utcnow

__all__ = ["Notification"]


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_application_id: Mapped[Optional[str]] = mapped_column(
        Text, ForeignKey("grant_applications.id"), nullable=True
    )
    type: Mapped[str] = mapped_column(Text, nullable=False, default="info")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    read_by: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    cleared_by: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
