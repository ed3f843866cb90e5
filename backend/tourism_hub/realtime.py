"""In-process change feed keyed by table name.

Every committed insert, update or delete on a tracked table is published
as a :class:`TableChange`.  Changes are collected per session in
``after_flush`` and only published in ``after_commit``, so subscribers
never observe rows from a transaction that later rolled back.

Subscribers are the :class:`~tourism_hub.state.AppState` read cache and
the SSE endpoint in :mod:`tourism_hub.routers.changes`.

Usage::

    feed = ChangeFeed()
    factory = create_session_factory(engine, change_feed=feed)

    async with feed.subscribe() as queue:
        change = await queue.get()
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

TRACKED_TABLES: frozenset[str] = frozenset(
    {
        "grant_applications",
        "notifications",
        "clusters",
        "cluster_reviews",
        "events",
        "users",
        "app_config",
        "visitor_analytics",
        "feedback",
        "itinerary_items",
    }
)

# Tables whose changes invalidate another collection (reviews live on clusters)
TABLE_ALIASES: dict[str, str] = {"cluster_reviews": "clusters"}

_PENDING_KEY = "pending_changes"
_QUEUE_MAXSIZE = 1000


@dataclass(frozen=True)
class TableChange:
    """One committed row change."""

    table: str
    op: str  # insert | update | delete
    record_id: Optional[str] = None
    committed_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "op": self.op,
            "record_id": self.record_id,
            "committed_at": self.committed_at.isoformat(),
        }


class ChangeFeed:
    """Fan-out of :class:`TableChange` events to asyncio queues."""

    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, change: TableChange) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(change)
            except asyncio.QueueFull:
                logger.warning(
                    "Change feed subscriber is full; dropping %s change on %s",
                    change.op,
                    change.table,
                )

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        self._subscribers.add(queue)
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)


# ---------------------------------------------------------------------------
# Session hooks
# ---------------------------------------------------------------------------


def _primary_key(obj) -> Optional[str]:
    state = inspect(obj)
    values = state.mapper.primary_key_from_instance(obj)
    if not values or any(v is None for v in values):
        return None
    return str(values[0]) if len(values) == 1 else ",".join(map(str, values))


def record_change(session: Session, table: str, op: str, record_id=None) -> None:
    """Queue a change that did not go through the unit of work.

    Bulk ``update()``/``delete()`` statements bypass ``after_flush``; callers
    that issue them register the change here.  Accepts either a sync
    ``Session`` or an ``AsyncSession`` (its ``sync_session`` is used).
    """
    sync_session = getattr(session, "sync_session", session)
    if "change_feed" not in sync_session.info:
        return
    pending = sync_session.info.setdefault(_PENDING_KEY, [])
    pending.append(
        TableChange(table, op, str(record_id) if record_id is not None else None)
    )


@event.listens_for(Session, "after_flush")
def _collect_changes(session: Session, flush_context) -> None:
    if "change_feed" not in session.info:
        return
    pending = session.info.setdefault(_PENDING_KEY, [])
    for op, objects in (
        ("insert", session.new),
        ("update", session.dirty),
        ("delete", session.deleted),
    ):
        for obj in objects:
            table = getattr(obj, "__tablename__", None)
            if table not in TRACKED_TABLES:
                continue
            if op == "update" and not session.is_modified(obj):
                continue
            pending.append(TableChange(table, op, _primary_key(obj)))


@event.listens_for(Session, "after_commit")
def _publish_changes(session: Session) -> None:
    feed = session.info.get("change_feed")
    pending = session.info.pop(_PENDING_KEY, [])
    if feed is None:
        return
    for change in pending:
        feed.publish(change)


@event.listens_for(Session, "after_rollback")
def _discard_changes(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)
