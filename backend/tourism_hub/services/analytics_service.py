"""Visitor arrival statistics: CSV parsing, batch upload and summaries.

CSV format (header required, case-insensitive)::

    year,month,country,visitor_type,count
    2025,1,Malaysia,domestic,120345
"""

import csv
import io
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import ValidationFailure
from tourism_hub.models.db.analytics import VisitorAnalytics
from tourism_hub.models.db.base import as_utc, utcnow
from tourism_hub.models.db.user import User
from tourism_hub.services.access_control import require_elevated

logger = logging.getLogger(__name__)

CSV_COLUMNS = ("year", "month", "country", "visitor_type", "count")
_ACTION = "Uploading visitor analytics"


def _parse_int(raw: str, column: str, line_no: int) -> int:
    try:
        return int(raw.strip().replace(",", ""))
    except (AttributeError, ValueError) as exc:
        raise ValidationFailure(
            f"Line {line_no}: '{column}' must be a whole number, got {raw!r}",
            action=_ACTION,
        ) from exc


def parse_visitor_csv(text: str) -> list[dict]:
    """Parse CSV text into visitor rows.

    Raises ValidationFailure naming the offending line for a wrong header,
    a short row, a non-numeric value, a month outside 1..12, a negative
    count or an empty country/visitor type.
    """
    if not text or not text.strip():
        raise ValidationFailure("CSV file is empty", action=_ACTION)

    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    header = next(reader, None)
    normalised = tuple(h.strip().lower() for h in (header or []))
    if normalised != CSV_COLUMNS:
        raise ValidationFailure(
            f"Line 1: header must be '{','.join(CSV_COLUMNS)}'", action=_ACTION
        )

    rows: list[dict] = []
    last_line = reader.line_num
    for record in reader:
        # A quoted field may span lines; report the line the record starts on
        line_no, last_line = last_line + 1, reader.line_num
        if not record or all(not cell.strip() for cell in record):
            continue
        if len(record) != len(CSV_COLUMNS):
            raise ValidationFailure(
                f"Line {line_no}: expected {len(CSV_COLUMNS)} columns, "
                f"got {len(record)}",
                action=_ACTION,
            )
        year_raw, month_raw, country, visitor_type, count_raw = record
        year = _parse_int(year_raw, "year", line_no)
        month = _parse_int(month_raw, "month", line_no)
        count = _parse_int(count_raw, "count", line_no)
        if not 1 <= month <= 12:
            raise ValidationFailure(
                f"Line {line_no}: month must be between 1 and 12, got {month}",
                action=_ACTION,
            )
        if count < 0:
            raise ValidationFailure(
                f"Line {line_no}: count cannot be negative", action=_ACTION
            )
        if not country.strip() or not visitor_type.strip():
            raise ValidationFailure(
                f"Line {line_no}: country and visitor_type are required",
                action=_ACTION,
            )
        rows.append(
            {
                "year": year,
                "month": month,
                "country": country.strip(),
                "visitor_type": visitor_type.strip().lower(),
                "count": count,
            }
        )
    if not rows:
        raise ValidationFailure("CSV file has no data rows", action=_ACTION)
    return rows


class AnalyticsService:

    @staticmethod
    async def upload_batch(
        db: AsyncSession, actor: Optional[User], rows: list[dict]
    ) -> int:
        """Insert rows, replacing any with the same (year, month, country, type)."""
        require_elevated(actor, _ACTION)
        merged: dict[tuple, dict] = {}
        for row in rows:
            key = (row["year"], row["month"], row["country"], row["visitor_type"])
            merged[key] = row

        for (year, month, country, visitor_type), row in merged.items():
            result = await db.execute(
                select(VisitorAnalytics).where(
                    VisitorAnalytics.year == year,
                    VisitorAnalytics.month == month,
                    VisitorAnalytics.country == country,
                    VisitorAnalytics.visitor_type == visitor_type,
                )
            )
            existing = result.scalar_one_or_none()
            if existing is None:
                db.add(VisitorAnalytics(**row))
            else:
                existing.count = row["count"]
                existing.updated_at = utcnow()
        await db.flush()
        logger.info("Visitor analytics upload by %s: %d rows", actor.id, len(merged))
        return len(merged)

    @staticmethod
    async def list_rows(
        db: AsyncSession, year: Optional[int] = None
    ) -> list[VisitorAnalytics]:
        query = select(VisitorAnalytics).order_by(
            VisitorAnalytics.year, VisitorAnalytics.month, VisitorAnalytics.country
        )
        if year is not None:
            query = query.where(VisitorAnalytics.year == year)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def summary(db: AsyncSession, year: Optional[int] = None) -> dict:
        """Totals by month, visitor type and country."""
        filters = [VisitorAnalytics.year == year] if year is not None else []
        total_col = func.sum(VisitorAnalytics.count)

        async def _group(column) -> dict:
            result = await db.execute(
                select(column, total_col).where(*filters).group_by(column)
            )
            return {key: int(total or 0) for key, total in result.all()}

        by_month = await _group(VisitorAnalytics.month)
        return {
            "year": year,
            "total": sum(by_month.values()),
            "by_month": by_month,
            "by_visitor_type": await _group(VisitorAnalytics.visitor_type),
            "by_country": await _group(VisitorAnalytics.country),
        }

    @staticmethod
    async def last_updated(db: AsyncSession) -> Optional[datetime]:
        """Latest change to the visitor table (drives AI insight freshness)."""
        result = await db.execute(select(func.max(VisitorAnalytics.updated_at)))
        return as_utc(result.scalar())
