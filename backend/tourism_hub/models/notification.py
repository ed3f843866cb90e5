"""Notification schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class NotificationResponse(BaseModel):
    id: str
    recipient_id: str
    message: str
    related_application_id: Optional[str] = None
    type: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    read_by: List[str] = Field(default_factory=list)
    is_read: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        return str(v)

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class BroadcastRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


class BannerRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    expires_at: Optional[datetime] = None


class CountResponse(BaseModel):
    count: int
