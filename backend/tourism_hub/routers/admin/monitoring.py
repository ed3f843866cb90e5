"""Admin view of the state cache and change-feed health."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from tourism_hub.deps import get_app_state, get_change_feed, require_admin_user
from tourism_hub.models.db.user import User
from tourism_hub.realtime import ChangeFeed
from tourism_hub.state import AppState

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/admin/monitoring/state")
async def state_cache_status(
    _current_user: User = Depends(require_admin_user),
    app_state: Optional[AppState] = Depends(get_app_state),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Row counts, load times and recent loader notices per cached table."""
    if app_state is None:
        return {
            "enabled": False,
            "subscribers": feed.subscriber_count,
            "collections": {},
            "notices": [],
        }
    collections = {}
    for table in app_state.tables:
        coll = app_state.collection(table)
        collections[table] = {
            "rows": len(coll.rows),
            "loaded_at": coll.loaded_at.isoformat() if coll.loaded_at else None,
            "error": coll.error,
        }
    return {
        "enabled": True,
        "subscribers": feed.subscriber_count,
        "collections": collections,
        "notices": list(app_state.notices),
    }
