"""Schemas for the AI-assisted endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class DescriptionRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    category: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=300)


class DescriptionResponse(BaseModel):
    description: str


class ItineraryRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=2000)


class Activity(BaseModel):
    time: str
    name: str
    description: str


class ItineraryDay(BaseModel):
    day: int
    activities: List[Activity] = Field(default_factory=list)


class SuggestedItinerary(BaseModel):
    """Schema the completion service must return for trip suggestions."""

    title: str
    days: List[ItineraryDay] = Field(default_factory=list)


class InsightResponse(BaseModel):
    view_name: str
    filter_key: str
    content: str
    data_last_updated_at: datetime
    cached: bool
