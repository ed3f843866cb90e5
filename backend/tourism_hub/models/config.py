"""Site configuration schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class SiteConfig(BaseModel):
    maintenance_enabled: bool = False
    maintenance_message: Optional[str] = None
    banner_image_url: Optional[str] = None
    banner_overlay_opacity: float = Field(0.5, ge=0, le=1)


class SiteConfigUpdate(BaseModel):
    maintenance_enabled: Optional[bool] = None
    maintenance_message: Optional[str] = Field(None, max_length=1000)
    banner_image_url: Optional[str] = Field(None, max_length=2000)
    banner_overlay_opacity: Optional[float] = Field(None, ge=0, le=1)
