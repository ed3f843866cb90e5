"""ORM row -> JSON-safe dict conversion shared by routers and the state cache."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional


def json_safe(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(obj, skip_cols: Optional[set[str]] = None) -> dict:
    """Convert an ORM model instance to a plain dict with JSON-safe values."""
    skip = skip_cols or set()
    return {
        col.name: json_safe(getattr(obj, col.key, None))
        for col in obj.__table__.columns
        if col.name not in skip
    }
