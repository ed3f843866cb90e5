"""Visitor analytics schemas."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class VisitorRow(BaseModel):
    year: int = Field(..., ge=1900, le=2200)
    month: int = Field(..., ge=1, le=12)
    country: str = Field(..., min_length=1, max_length=100)
    visitor_type: str = Field(..., min_length=1, max_length=50)
    count: int = Field(..., ge=0)


class VisitorUploadRequest(BaseModel):
    """Either pre-parsed rows or raw CSV text."""

    rows: Optional[List[VisitorRow]] = None
    csv_text: Optional[str] = None


class VisitorUploadResponse(BaseModel):
    rows_written: int


class VisitorSummary(BaseModel):
    year: Optional[int] = None
    total: int = 0
    by_month: Dict[int, int] = Field(default_factory=dict)
    by_visitor_type: Dict[str, int] = Field(default_factory=dict)
    by_country: Dict[str, int] = Field(default_factory=dict)
