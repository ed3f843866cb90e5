"""JWT issuing and validation for Tourism Hub accounts.

Tokens are signed with HS256 via python-jose and carry the user id in
``sub``.  Passwords are hashed with bcrypt in
:mod:`tourism_hub.services.user_service`.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from dotenv import load_dotenv
from jose import JWTError, jwt

from tourism_hub.models.db.user import User

load_dotenv()

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JWT configuration
# ---------------------------------------------------------------------------
JWT_SECRET = os.getenv("JWT_SECRET", "tourism-hub-dev-secret-change-in-production")
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = int(os.getenv("JWT_EXPIRY_HOURS", "24"))


def create_access_token(user: User, now: Optional[datetime] = None) -> str:
    """Create a signed JWT containing the user's id, email and role."""
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "exp": now + timedelta(hours=JWT_EXPIRY_HOURS),
        "iat": now,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """Return the token payload, or ``None`` if invalid or expired."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        return None
    if not payload.get("sub"):
        return None
    return payload
