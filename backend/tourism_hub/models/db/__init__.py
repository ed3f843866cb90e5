"""SQLAlchemy 2.0 ORM models for the Tourism Hub API.

Import all models here so ``create_all`` and Alembic can discover them via::

    from tourism_hub.models.db import Base  # noqa: F401

Every model must be imported at module level to register with the
``DeclarativeBase`` metadata.
"""

from tourism_hub.models.db.base import Base, TimestampMixin  # noqa: F401

# Core domain models
from tourism_hub.models.db.user import User  # noqa: F401
from tourism_hub.models.db.grant_application import (  # noqa: F401
    GrantApplication,
    GrantStatusEntry,
)
from tourism_hub.models.db.notification import Notification  # noqa: F401

# Tourism content
from tourism_hub.models.db.cluster import (  # noqa: F401
    Cluster,
    ClusterAnalytic,
    ClusterReview,
)
from tourism_hub.models.db.event import Event  # noqa: F401
from tourism_hub.models.db.itinerary import Itinerary, ItineraryItem  # noqa: F401

# Supporting tables
from tourism_hub.models.db.feedback import Feedback  # noqa: F401
from tourism_hub.models.db.analytics import AiInsight, VisitorAnalytics  # noqa: F401
from tourism_hub.models.db.app_config import AppConfig  # noqa: F401

__all__ = [
    "Base",
    "TimestampMixin",
    # Core
    "User",
    "GrantApplication",
    "GrantStatusEntry",
    "Notification",
    # Tourism content
    "Cluster",
    "ClusterAnalytic",
    "ClusterReview",
    "Event",
    "Itinerary",
    "ItineraryItem",
    # Supporting
    "Feedback",
    "AiInsight",
    "VisitorAnalytics",
    "AppConfig",
]
