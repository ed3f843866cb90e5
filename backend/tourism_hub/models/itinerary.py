"""Itinerary schemas."""

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field, field_validator

from tourism_hub.models._common import stringify_uuid

ItemType = Literal["cluster", "event"]


class ItineraryItemCreate(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=100)
    item_type: ItemType
    item_name: str = Field(..., min_length=1, max_length=300)


class ItineraryItemResponse(BaseModel):
    id: str
    item_id: str
    item_type: str
    item_name: str
    created_at: datetime

    ids_to_str = field_validator("id", mode="before")(stringify_uuid)

    class Config:
        from_attributes = True


class ItineraryResponse(BaseModel):
    id: str
    name: str
    items: List[ItineraryItemResponse] = Field(default_factory=list)
