"""User ORM model.

Maps to the ``users`` table.  ``role`` is one of ``Admin``, ``Editor``,
``Tourism Player`` or ``User``; ``tier`` is ``Free`` or ``Premium``.
"""

from typing import Optional

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from tourism_hub.models.db.base import Base, TimestampMixin, UuidPkMixin

__all__ = ["User"]


class User(UuidPkMixin, TimestampMixin, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="User")
    tier: Mapped[str] = mapped_column(Text, nullable=False, default="Free")
    hashed_password: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def to_profile(self) -> dict:
        """Profile dict without the password hash (what dependencies return)."""
        return {
            "id": str(self.id),
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "tier": self.tier,
            "created_at": self.created_at,
        }
