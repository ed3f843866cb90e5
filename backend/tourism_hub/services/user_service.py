"""Account registration, authentication and admin user management."""

import logging
import uuid
from typing import Optional

import bcrypt
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import (
    ConflictOrDuplicate,
    NotFound,
    PermissionDenied,
    ValidationFailure,
)
from tourism_hub.models.db.user import User
from tourism_hub.services.access_control import (
    ROLE_ADMIN,
    ROLES,
    SELF_REGISTRATION_ROLES,
    TIER_FREE,
    TIERS,
    is_admin,
    require_elevated,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Password hashing (direct bcrypt)
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


class UserService:

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def register(
        db: AsyncSession, email: str, password: str, name: str, role: str = "User"
    ) -> User:
        action = "Registering account"
        if role not in SELF_REGISTRATION_ROLES:
            raise PermissionDenied(
                "Self-registration is limited to User and Tourism Player accounts",
                action=action,
            )
        email = email.strip().lower()
        if await UserService.get_by_email(db, email) is not None:
            raise ConflictOrDuplicate(
                "An account with this email already exists", action=action
            )
        user = User(
            email=email,
            name=name.strip(),
            role=role,
            tier=TIER_FREE,
            hashed_password=hash_password(password),
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictOrDuplicate(
                "An account with this email already exists", action=action
            ) from exc
        logger.info("Registered user %s (%s)", user.id, role)
        return user

    @staticmethod
    async def authenticate(
        db: AsyncSession, email: str, password: str
    ) -> Optional[User]:
        """Return the user on a correct password, else ``None``."""
        user = await UserService.get_by_email(db, email)
        if user is None or not verify_password(password, user.hashed_password):
            return None
        return user

    @staticmethod
    async def list_users(db: AsyncSession, actor: Optional[User]) -> list[User]:
        require_elevated(actor, "Fetching users")
        result = await db.execute(select(User).order_by(User.name))
        return list(result.scalars().all())

    @staticmethod
    async def edit_user(
        db: AsyncSession,
        actor: Optional[User],
        user_id: uuid.UUID,
        changes: dict,
    ) -> User:
        """Edit name/role/tier.  Only an Admin may grant or revoke Admin."""
        action = "Editing user"
        require_elevated(actor, action)
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound("User not found", action=action)

        role = changes.get("role")
        if role is not None:
            if role not in ROLES:
                raise ValidationFailure(f"Unknown role '{role}'", action=action)
            touches_admin = ROLE_ADMIN in (role, user.role) and role != user.role
            if touches_admin and not is_admin(actor):
                raise PermissionDenied(
                    "Only an Admin can grant or revoke the Admin role", action=action
                )
            user.role = role
        tier = changes.get("tier")
        if tier is not None:
            if tier not in TIERS:
                raise ValidationFailure(f"Unknown tier '{tier}'", action=action)
            user.tier = tier
        name = changes.get("name")
        if name is not None:
            if not name.strip():
                raise ValidationFailure("Name cannot be blank", action=action)
            user.name = name.strip()

        await db.flush()
        logger.info("User %s edited by %s: %s", user_id, actor.id, sorted(changes))
        return user
