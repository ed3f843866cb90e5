"""Server-Sent Events formatting for the change feed stream.

All events follow the format ``event: <type>\\ndata: {json}\\n\\n``.
Event types: change, ping, error.
"""

import json
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any


class _SSEEncoder(json.JSONEncoder):
    """JSON encoder that handles UUID, datetime, and Decimal objects."""

    def default(self, o: Any) -> Any:
        if isinstance(o, uuid.UUID):
            return str(o)
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, Decimal):
            return float(o)
        return super().default(o)


def _dumps(obj: Any) -> str:
    return json.dumps(obj, cls=_SSEEncoder)


def sse_event(event_type: str, data: Any) -> str:
    """Format a named Server-Sent Event."""
    return f"event: {event_type}\ndata: {_dumps(data)}\n\n"


def sse_change(change: dict) -> str:
    """Format a table-change event (``{table, op, record_id, committed_at}``)."""
    return sse_event("change", change)


def sse_ping() -> str:
    """Comment line that keeps idle proxies from closing the stream."""
    return ": ping\n\n"


def sse_error(message: str) -> str:
    return sse_event("error", {"message": message})
