"""AI-assisted copywriting, trip planning and dashboard insights.

Completion output is advisory only.  Nothing here changes application
state other than the cached insight text.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import (
    _safe_error,
    get_ai_service,
    get_app_state,
    get_current_user,
    get_db,
)
from tourism_hub.errors import DomainError
from tourism_hub.helpers.db_utils import row_to_dict
from tourism_hub.models.ai import (
    DescriptionRequest,
    DescriptionResponse,
    InsightResponse,
    ItineraryRequest,
    SuggestedItinerary,
)
from tourism_hub.models.db.user import User
from tourism_hub.security import rate_limit_ai
from tourism_hub.services.access_control import require_content_creator
from tourism_hub.services.ai_service import AiService
from tourism_hub.services.analytics_service import AnalyticsService
from tourism_hub.services.cluster_service import ClusterService
from tourism_hub.services.event_service import EventService
from tourism_hub.state import AppState

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["ai"])

# Stand-in freshness stamp when a view has no data yet
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@router.post("/ai/cluster-description", response_model=DescriptionResponse)
@rate_limit_ai()
async def generate_cluster_description(
    request: Request,
    body: DescriptionRequest,
    user: User = Depends(get_current_user),
    ai_service: AiService = Depends(get_ai_service),
):
    try:
        require_content_creator(user, "Generating description")
        text = await ai_service.generate_cluster_description(
            body.name, body.category, body.location
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("generating description", e),
        ) from e
    return DescriptionResponse(description=text)


@router.post("/ai/itinerary", response_model=SuggestedItinerary)
@rate_limit_ai()
async def suggest_itinerary(
    request: Request,
    body: ItineraryRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    ai_service: AiService = Depends(get_ai_service),
    app_state: Optional[AppState] = Depends(get_app_state),
):
    """Day-by-day plan built from the public clusters and events."""
    try:
        if app_state is not None:
            clusters = app_state.clusters()
            events = app_state.events()
        else:
            clusters = [row_to_dict(c) for c in await ClusterService.list_clusters(db)]
            events = [row_to_dict(e) for e in await EventService.list_events(db)]
        return await ai_service.suggest_itinerary(body.prompt, clusters, events)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("planning itinerary", e),
        ) from e


@router.get("/ai/insights/visitors", response_model=InsightResponse)
async def visitor_insight(
    year: Optional[int] = Query(None, ge=1900, le=2200),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    ai_service: AiService = Depends(get_ai_service),
):
    """Narrative summary of the visitor figures, regenerated only when the
    underlying data changed since the cached text was written."""
    filter_key = str(year) if year is not None else "all"
    try:
        last_updated = await AnalyticsService.last_updated(db) or _EPOCH

        async def build_prompt() -> str:
            summary = await AnalyticsService.summary(db, year=year)
            return (
                f"Visitor arrivals to Sarawak ({filter_key}).\n"
                f"Total: {summary['total']}\n"
                f"By month: {summary['by_month']}\n"
                f"By visitor type: {summary['by_visitor_type']}\n"
                f"By country: {summary['by_country']}"
            )

        insight, cached = await ai_service.get_insight(
            db, "visitor_analytics", filter_key, last_updated, build_prompt
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("visitor insight", e),
        ) from e
    return InsightResponse(
        view_name=insight.view_name,
        filter_key=insight.filter_key,
        content=insight.content,
        data_last_updated_at=insight.data_last_updated_at,
        cached=cached,
    )


@router.get("/ai/insights/events", response_model=InsightResponse)
async def events_insight(
    year: int = Query(..., ge=1900, le=2200),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    ai_service: AiService = Depends(get_ai_service),
):
    try:
        last_updated = await EventService.latest_update_for_year(db, year) or _EPOCH

        async def build_prompt() -> str:
            events = await EventService.list_events(db, year=year)
            lines = [
                f"- {e.title} ({e.category or 'General'}) starting "
                f"{e.start_date:%Y-%m-%d} at {e.location or 'Sarawak'}"
                for e in events
            ]
            return f"Events calendar for {year}:\n" + ("\n".join(lines) or "- (none)")

        insight, cached = await ai_service.get_insight(
            db, "events_calendar", str(year), last_updated, build_prompt
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("events insight", e),
        ) from e
    return InsightResponse(
        view_name=insight.view_name,
        filter_key=insight.filter_key,
        content=insight.content,
        data_last_updated_at=insight.data_last_updated_at,
        cached=cached,
    )
