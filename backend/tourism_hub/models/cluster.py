"""Cluster and review schemas."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from tourism_hub.models._common import stringify_uuid


class ClusterBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = Field(None, max_length=20000)
    category: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=300)
    display_address: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    image: Optional[str] = None
    is_active: bool = True
    is_hidden: bool = False


class ClusterCreate(ClusterBase):
    pass


class ClusterBatchCreate(BaseModel):
    clusters: List[ClusterCreate] = Field(..., min_length=1, max_length=5000)


class ClusterUpdate(BaseModel):
    """All fields optional; only the ones sent are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = Field(None, max_length=20000)
    category: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=300)
    display_address: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    image: Optional[str] = None
    is_active: Optional[bool] = None
    is_hidden: Optional[bool] = None


class ClusterResponse(ClusterBase):
    id: str
    owner_id: str
    view_count: int = 0
    click_count: int = 0
    average_rating: Optional[float] = None
    review_count: int = 0
    created_at: datetime
    updated_at: datetime

    ids_to_str = field_validator("id", "owner_id", mode="before")(stringify_uuid)

    class Config:
        from_attributes = True


class TransferOwnershipRequest(BaseModel):
    new_owner_id: str


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=5000)


class ReviewResponse(BaseModel):
    id: str
    cluster_id: str
    user_id: str
    reviewer_name: Optional[str] = None
    rating: int
    comment: Optional[str] = None
    created_at: datetime


class DailyAnalytic(BaseModel):
    date: date
    views: int = 0
    clicks: int = 0
