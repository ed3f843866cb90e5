"""Application-state read cache kept fresh by the change feed.

:class:`AppState` holds typed read models for the public collections
(clusters, events, site config) so hot read endpoints do not hit the
database on every request.  It is created in the app lifespan, stored on
``app.state.app_state`` and handed to routers through
:func:`tourism_hub.deps.get_app_state`.

Change handling (see :meth:`AppState.apply_change`):

- ``delete`` with a record id removes that row
- ``insert`` / ``update`` with a record id re-reads that single row
- a missing record id, or a re-read that finds nothing for an update,
  reloads the whole collection

A failing loader leaves the collection empty and records a notice
instead of raising; readers always get a (possibly empty) list.
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tourism_hub.helpers.db_utils import row_to_dict
from tourism_hub.models.db.app_config import AppConfig
from tourism_hub.models.db.base import utcnow
from tourism_hub.models.db.cluster import Cluster
from tourism_hub.models.db.event import Event
from tourism_hub.realtime import TABLE_ALIASES, ChangeFeed, TableChange

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_NOTICES = 50


@dataclass
class Collection(Generic[T]):
    """One cached table: rows keyed by primary id."""

    table: str
    model: type
    key_of: Callable[[Any], str]
    rows: dict[str, T] = field(default_factory=dict)
    loaded_at: Optional[datetime] = None
    error: Optional[str] = None

    def values(self) -> list[T]:
        return list(self.rows.values())


def _parse_pk(model: type, record_id: str) -> Any:
    if model is AppConfig:
        return record_id
    return uuid.UUID(record_id)


class AppState:
    """Per-application cache of public collections.

    Mutation entry points are :meth:`reload`, :meth:`apply_change` and
    :meth:`start`/:meth:`stop`; everything else is read-only.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: Optional[ChangeFeed] = None,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self.notices: deque[str] = deque(maxlen=MAX_NOTICES)
        self._collections: dict[str, Collection] = {
            "clusters": Collection("clusters", Cluster, lambda r: str(r["id"])),
            "events": Collection("events", Event, lambda r: str(r["id"])),
            "app_config": Collection("app_config", AppConfig, lambda r: r["key"]),
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def tables(self) -> list[str]:
        return list(self._collections)

    def collection(self, table: str) -> Collection:
        return self._collections[table]

    def clusters(self, include_hidden: bool = False) -> list[dict]:
        rows = self._collections["clusters"].values()
        if include_hidden:
            return rows
        return [r for r in rows if not r.get("is_hidden")]

    def events(self) -> list[dict]:
        return sorted(
            self._collections["events"].values(), key=lambda r: r.get("start_date") or ""
        )

    def config(self) -> dict[str, str]:
        return {r["key"]: r["value"] for r in self._collections["app_config"].values()}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _notice(self, message: str) -> None:
        logger.warning(message)
        self.notices.append(f"{utcnow().isoformat()} {message}")

    async def reload(self, table: str) -> None:
        """Full reload of one collection; failures leave it empty."""
        coll = self._collections[table]
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(coll.model))
                rows = [row_to_dict(obj) for obj in result.scalars().all()]
        except Exception as exc:
            coll.rows = {}
            coll.error = f"{type(exc).__name__}: {exc}"
            self._notice(f"Loading {table} failed; serving an empty list")
            return
        coll.rows = {coll.key_of(r): r for r in rows}
        coll.loaded_at = utcnow()
        coll.error = None
        logger.debug("Loaded %d rows into %s cache", len(rows), table)

    async def reload_all(self) -> None:
        for table in self._collections:
            await self.reload(table)

    async def _refresh_row(self, coll: Collection, record_id: str) -> bool:
        """Re-read one row; returns False when it no longer exists."""
        try:
            pk = _parse_pk(coll.model, record_id)
        except ValueError:
            return False
        async with self._session_factory() as session:
            obj = await session.get(coll.model, pk)
            if obj is None:
                return False
            row = row_to_dict(obj)
        coll.rows[coll.key_of(row)] = row
        return True

    async def apply_change(self, change: TableChange) -> None:
        """Apply one committed change to the matching collection."""
        table = TABLE_ALIASES.get(change.table, change.table)
        coll = self._collections.get(table)
        if coll is None:
            return
        async with self._lock:
            if change.table != table or change.record_id is None:
                # Alias tables (reviews) carry the child's id, not ours
                await self.reload(table)
                return
            if change.op == "delete":
                if coll.rows.pop(change.record_id, None) is None:
                    await self.reload(table)
                return
            try:
                found = await self._refresh_row(coll, change.record_id)
            except Exception:
                self._notice(f"Refreshing {table}/{change.record_id} failed")
                await self.reload(table)
                return
            if not found:
                coll.rows.pop(change.record_id, None)
                if change.op == "update":
                    await self.reload(table)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        async with self._feed.subscribe() as queue:
            while True:
                change = await queue.get()
                try:
                    await self.apply_change(change)
                except Exception:
                    logger.exception("Applying %s on %s failed", change.op, change.table)
                    self._notice(f"Cache update for {change.table} failed")

    async def start(self) -> None:
        await self.reload_all()
        if self._feed is not None and self._task is None:
            self._task = asyncio.create_task(self._consume(), name="app-state-feed")
            # Let the consumer register its queue before returning
            await asyncio.sleep(0)
        logger.info("AppState started with collections: %s", ", ".join(self.tables))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
