"""Analytics ORM models.

Tables
------
- visitor_analytics  (monthly visitor arrivals by country and type)
- ai_insights        (cached AI commentary per dashboard view and filter)
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tourism_hub.models.db.base import Base, UuidPkMixin, utcnow

__all__ = ["VisitorAnalytics", "AiInsight"]


class VisitorAnalytics(UuidPkMixin, Base):
    __tablename__ = "visitor_analytics"
    __table_args__ = (
        UniqueConstraint(
            "year", "month", "country", "visitor_type", name="uq_visitor_analytics_row"
        ),
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    country: Mapped[str] = mapped_column(Text, nullable=False)
    visitor_type: Mapped[str] = mapped_column(Text, nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class AiInsight(UuidPkMixin, Base):
    __tablename__ = "ai_insights"
    __table_args__ = (
        UniqueConstraint("view_name", "filter_key", name="uq_ai_insight_view_filter"),
    )

    view_name: Mapped[str] = mapped_column(Text, nullable=False)
    filter_key: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    data_last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
