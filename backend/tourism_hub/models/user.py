"""Auth and user-management schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from tourism_hub.models._common import stringify_uuid

RoleName = Literal["Admin", "Editor", "Tourism Player", "User"]
TierName = Literal["Free", "Premium"]


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=200)


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=8, max_length=200)
    name: str = Field(..., min_length=1, max_length=200)
    role: Literal["User", "Tourism Player"] = "User"

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class UserProfile(BaseModel):
    id: str
    email: str
    name: str
    role: str
    tier: str
    created_at: Optional[datetime] = None

    ids_to_str = field_validator("id", mode="before")(stringify_uuid)

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserProfile


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[RoleName] = None
    tier: Optional[TierName] = None
