"""Role and ownership guards shared by every service.

Routers may pre-check roles for a friendlier error, but these guards run
inside the service methods and are the actual security boundary.
"""

import uuid
from typing import Optional

from tourism_hub.errors import PermissionDenied
from tourism_hub.models.db.user import User

ROLE_ADMIN = "Admin"
ROLE_EDITOR = "Editor"
ROLE_TOURISM_PLAYER = "Tourism Player"
ROLE_USER = "User"

ROLES = (ROLE_ADMIN, ROLE_EDITOR, ROLE_TOURISM_PLAYER, ROLE_USER)
ELEVATED_ROLES = frozenset({ROLE_ADMIN, ROLE_EDITOR})
SELF_REGISTRATION_ROLES = frozenset({ROLE_USER, ROLE_TOURISM_PLAYER})

TIER_FREE = "Free"
TIER_PREMIUM = "Premium"
TIERS = (TIER_FREE, TIER_PREMIUM)


def is_elevated(user: Optional[User]) -> bool:
    return user is not None and user.role in ELEVATED_ROLES


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == ROLE_ADMIN


def require_user(user: Optional[User], action: str) -> User:
    if user is None:
        raise PermissionDenied("You must be signed in to do this", action=action)
    return user


def require_elevated(user: Optional[User], action: str) -> User:
    """Admin or Editor."""
    if not is_elevated(user):
        raise PermissionDenied(
            "This action requires an Admin or Editor account", action=action
        )
    return user


def require_admin(user: Optional[User], action: str) -> User:
    if not is_admin(user):
        raise PermissionDenied("This action requires an Admin account", action=action)
    return user


def require_content_creator(user: Optional[User], action: str) -> User:
    """Tourism Player or elevated."""
    user = require_user(user, action)
    if user.role != ROLE_TOURISM_PLAYER and not is_elevated(user):
        raise PermissionDenied(
            "Only Tourism Players and staff can create content", action=action
        )
    return user


def require_owner_or_elevated(
    user: Optional[User], owner_id: Optional[uuid.UUID], action: str
) -> User:
    user = require_user(user, action)
    if user.id != owner_id and not is_elevated(user):
        raise PermissionDenied("You do not own this record", action=action)
    return user
