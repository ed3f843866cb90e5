"""Visitor statistics: CSV/row upload (staff) and public summaries."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import _safe_error, get_current_user, get_db
from tourism_hub.errors import DomainError, ValidationFailure
from tourism_hub.models.analytics import (
    VisitorRow,
    VisitorSummary,
    VisitorUploadRequest,
    VisitorUploadResponse,
)
from tourism_hub.models.db.user import User
from tourism_hub.services.analytics_service import AnalyticsService, parse_visitor_csv

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["analytics"])


@router.post("/analytics/visitors", response_model=VisitorUploadResponse)
async def upload_visitor_data(
    body: VisitorUploadRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Accepts either ``rows`` or ``csv_text`` (header
    ``year,month,country,visitor_type,count``)."""
    try:
        if body.csv_text is not None:
            rows = parse_visitor_csv(body.csv_text)
        elif body.rows:
            rows = [row.model_dump() for row in body.rows]
        else:
            raise ValidationFailure(
                "Provide rows or csv_text", action="Uploading visitor analytics"
            )
        written = await AnalyticsService.upload_batch(db, user, rows)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("visitor analytics upload", e),
        ) from e
    return VisitorUploadResponse(rows_written=written)


@router.get("/analytics/visitors", response_model=list[VisitorRow])
async def list_visitor_rows(
    year: Optional[int] = Query(None, ge=1900, le=2200),
    db: AsyncSession = Depends(get_db),
):
    try:
        rows = await AnalyticsService.list_rows(db, year=year)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing visitor analytics", e),
        ) from e
    return [
        VisitorRow(
            year=r.year,
            month=r.month,
            country=r.country,
            visitor_type=r.visitor_type,
            count=r.count,
        )
        for r in rows
    ]


@router.get("/analytics/visitors/summary", response_model=VisitorSummary)
async def visitor_summary(
    year: Optional[int] = Query(None, ge=1900, le=2200),
    db: AsyncSession = Depends(get_db),
):
    try:
        return VisitorSummary(**await AnalyticsService.summary(db, year=year))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("visitor summary", e),
        ) from e
