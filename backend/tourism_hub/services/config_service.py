"""Site configuration stored in the ``app_config`` key/value table.

Reads go through a short in-memory cache so the public config endpoint
(hit on every page load) does not query the database each time.  Writes
invalidate the cache immediately.

Keys:
- ``maintenance_enabled``     "true" / "false"
- ``maintenance_message``     free text
- ``banner_image_url``        dashboard hero image
- ``banner_overlay_opacity``  float 0..1
"""

import logging
import time
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import ValidationFailure
from tourism_hub.models.db.app_config import AppConfig
from tourism_hub.models.db.user import User
from tourism_hub.services.access_control import require_elevated

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, Any] = {
    "maintenance_enabled": False,
    "maintenance_message": None,
    "banner_image_url": None,
    "banner_overlay_opacity": 0.5,
}

# ---------------------------------------------------------------------------
# In-memory cache: (config dict, monotonic timestamp)
# ---------------------------------------------------------------------------
_cache: Optional[tuple[dict, float]] = None
_CACHE_TTL = 30.0  # seconds


def invalidate_cache() -> None:
    global _cache
    _cache = None


def _decode(key: str, raw: Optional[str]) -> Any:
    if raw is None:
        return DEFAULTS[key]
    if key == "maintenance_enabled":
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if key == "banner_overlay_opacity":
        try:
            return min(max(float(raw), 0.0), 1.0)
        except ValueError:
            logger.warning("Ignoring invalid banner_overlay_opacity %r", raw)
            return DEFAULTS[key]
    return raw or None


def _encode(key: str, value: Any) -> str:
    if key == "maintenance_enabled":
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


class ConfigService:

    @staticmethod
    async def get_site_config(db: AsyncSession) -> dict:
        global _cache
        now = time.monotonic()
        if _cache is not None and now - _cache[1] < _CACHE_TTL:
            return dict(_cache[0])

        result = await db.execute(
            select(AppConfig).where(AppConfig.key.in_(list(DEFAULTS)))
        )
        stored = {row.key: row.value for row in result.scalars().all()}
        config = {key: _decode(key, stored.get(key)) for key in DEFAULTS}
        _cache = (config, now)
        return dict(config)

    @staticmethod
    async def update_site_config(
        db: AsyncSession, actor: Optional[User], changes: dict
    ) -> dict:
        action = "Updating site configuration"
        require_elevated(actor, action)
        unknown = set(changes) - set(DEFAULTS)
        if unknown:
            raise ValidationFailure(
                f"Unknown config keys: {', '.join(sorted(unknown))}", action=action
            )

        for key, value in changes.items():
            row = await db.get(AppConfig, key)
            encoded = _encode(key, value)
            if row is None:
                db.add(AppConfig(key=key, value=encoded, updated_by=actor.id))
            else:
                row.value = encoded
                row.updated_by = actor.id
        await db.flush()
        invalidate_cache()
        logger.info("Site config updated by %s: %s", actor.id, sorted(changes))
        return await ConfigService.get_site_config(db)
