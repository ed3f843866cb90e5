"""Server-Sent Events stream of committed table changes.

Clients subscribe once and refetch whatever the events name; payloads
carry ``{table, op, record_id, committed_at}`` and never row contents.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials

from tourism_hub.deps import _resolve_user, get_change_feed, security
from tourism_hub.helpers.sse import sse_change, sse_ping
from tourism_hub.realtime import TRACKED_TABLES, ChangeFeed

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["changes"])

PING_INTERVAL_SECONDS = 15.0


async def _stream_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    # Short-lived session: the stream itself must not hold a connection
    async with request.app.state.session_factory() as session:
        user = await _resolve_user(request, credentials, session)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


@router.get("/changes/stream")
async def stream_changes(
    request: Request,
    tables: Optional[str] = Query(
        None, description="Comma-separated table names to receive (default: all)"
    ),
    user=Depends(_stream_user),
    feed: ChangeFeed = Depends(get_change_feed),
):
    wanted = None
    if tables:
        wanted = {t.strip() for t in tables.split(",") if t.strip()}
        unknown = wanted - set(TRACKED_TABLES)
        if unknown:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown tables: {', '.join(sorted(unknown))}",
            )

    async def event_generator():
        async with feed.subscribe() as queue:
            logger.info(
                "Change stream opened for %s (%d subscribers)",
                user.id,
                feed.subscriber_count,
            )
            try:
                yield sse_ping()
                while not await request.is_disconnected():
                    try:
                        change = await asyncio.wait_for(
                            queue.get(), timeout=PING_INTERVAL_SECONDS
                        )
                    except asyncio.TimeoutError:
                        yield sse_ping()
                        continue
                    if wanted is None or change.table in wanted:
                        yield sse_change(change.to_dict())
            finally:
                logger.info("Change stream closed for %s", user.id)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
