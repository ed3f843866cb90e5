"""Event schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from tourism_hub.models._common import stringify_uuid


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = Field(None, max_length=20000)
    category: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=300)
    image: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = Field(None, max_length=20000)
    category: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=300)
    image: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class EventResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    image: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    created_by: str
    created_at: datetime
    updated_at: datetime

    ids_to_str = field_validator("id", "created_by", mode="before")(stringify_uuid)

    class Config:
        from_attributes = True
