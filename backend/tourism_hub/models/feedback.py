"""Feedback schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from tourism_hub.models._common import stringify_uuid

FeedbackStatus = Literal["new", "seen", "in_progress", "resolved"]


class FeedbackCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    is_anonymous: bool = False
    page_context: Optional[str] = Field(None, max_length=500)


class FeedbackStatusUpdate(BaseModel):
    status: FeedbackStatus


class FeedbackResponse(BaseModel):
    id: str
    content: str
    page_context: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    status: str
    created_at: datetime

    ids_to_str = field_validator("id", "user_id", mode="before")(stringify_uuid)

    class Config:
        from_attributes = True
