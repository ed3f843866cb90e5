"""Notification dispatcher and per-user notification actions.

Rows are addressed either to one account (its id as text) or to a
recipient class:

- ``admins``        visible to Admin and Editor accounts
- ``grant_admins``  visible to Admin accounts only
- ``global_banner`` visible to everyone; at most one row exists

Visibility is computed on read and never stored.  ``read_by`` and
``cleared_by`` only ever gain ids.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import NotFound, ValidationFailure
from tourism_hub.models.db.base import as_utc, utcnow
from tourism_hub.models.db.notification import Notification
from tourism_hub.models.db.user import User
from tourism_hub.services.access_control import (
    is_admin,
    is_elevated,
    require_elevated,
    require_user,
)

logger = logging.getLogger(__name__)

RECIPIENT_ADMINS = "admins"
RECIPIENT_GRANT_ADMINS = "grant_admins"
RECIPIENT_GLOBAL_BANNER = "global_banner"

MAX_MESSAGE_LENGTH = 2000


def _clean_message(message: str, action: str) -> str:
    text = (message or "").strip()
    if not text:
        raise ValidationFailure("Notification message cannot be empty", action=action)
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationFailure(
            f"Notification message exceeds {MAX_MESSAGE_LENGTH} characters",
            action=action,
        )
    return text


def _is_expired(notification: Notification, now: datetime) -> bool:
    expires_at = as_utc(notification.expires_at)
    return expires_at is not None and expires_at <= now


def is_visible_to(notification: Notification, user: User) -> bool:
    """Whether *user* should see *notification* (ignores expiry)."""
    user_key = str(user.id)
    if user_key in (notification.cleared_by or []):
        return False
    recipient = notification.recipient_id
    if recipient == user_key:
        return True
    if recipient == RECIPIENT_ADMINS:
        return is_elevated(user)
    if recipient == RECIPIENT_GRANT_ADMINS:
        return is_admin(user)
    return recipient == RECIPIENT_GLOBAL_BANNER


def _recipient_keys(user: User) -> list[str]:
    keys = [str(user.id), RECIPIENT_GLOBAL_BANNER]
    if is_elevated(user):
        keys.append(RECIPIENT_ADMINS)
    if is_admin(user):
        keys.append(RECIPIENT_GRANT_ADMINS)
    return keys


class NotificationService:
    """Creates notifications and applies per-user read/clear state."""

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    @staticmethod
    async def notify_admins(
        db: AsyncSession,
        message: str,
        related_application_id: Optional[str] = None,
        type: str = "info",
    ) -> Notification:
        """Insert one row addressed to ``grant_admins``."""
        notification = Notification(
            recipient_id=RECIPIENT_GRANT_ADMINS,
            message=_clean_message(message, "notify_admins"),
            related_application_id=related_application_id,
            type=type,
            read_by=[],
            cleared_by=[],
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def notify_user(
        db: AsyncSession,
        recipient_id: uuid.UUID | str,
        message: str,
        related_application_id: Optional[str] = None,
        type: str = "info",
    ) -> Notification:
        """Insert one row addressed to a single account."""
        notification = Notification(
            recipient_id=str(recipient_id),
            message=_clean_message(message, "notify_user"),
            related_application_id=related_application_id,
            type=type,
            read_by=[],
            cleared_by=[],
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def broadcast_to_all_users(
        db: AsyncSession, actor: Optional[User], message: str
    ) -> int:
        """Fan a message out as one personally-addressed row per account.

        Returns the number of rows inserted.  Nothing is written when the
        actor is not elevated.
        """
        action = "Sending notification to all users"
        require_elevated(actor, action)
        text = _clean_message(message, action)

        result = await db.execute(select(User.id))
        user_ids = result.scalars().all()
        for user_id in user_ids:
            db.add(
                Notification(
                    recipient_id=str(user_id),
                    message=text,
                    type="broadcast",
                    read_by=[],
                    cleared_by=[],
                )
            )
        await db.flush()
        logger.info("Broadcast by %s delivered to %d users", actor.id, len(user_ids))
        return len(user_ids)

    @staticmethod
    async def set_banner(
        db: AsyncSession,
        actor: Optional[User],
        message: str,
        expires_at: Optional[datetime] = None,
    ) -> Notification:
        """Replace the site banner.

        Deletes every ``global_banner`` row, then inserts exactly one.
        Two admins racing can briefly leave zero or two banners; the last
        writer wins.
        """
        action = "Setting site banner"
        require_elevated(actor, action)
        text = _clean_message(message, action)
        expires_at = as_utc(expires_at)
        if expires_at is not None and expires_at <= utcnow():
            raise ValidationFailure("Banner expiry must be in the future", action=action)

        result = await db.execute(
            select(Notification).where(
                Notification.recipient_id == RECIPIENT_GLOBAL_BANNER
            )
        )
        for old in result.scalars().all():
            await db.delete(old)
        await db.flush()

        banner = Notification(
            recipient_id=RECIPIENT_GLOBAL_BANNER,
            message=text,
            type="status_change",
            expires_at=expires_at,
            read_by=[],
            cleared_by=[],
        )
        db.add(banner)
        await db.flush()
        logger.info("Site banner set by %s (expires_at=%s)", actor.id, expires_at)
        return banner

    # ------------------------------------------------------------------
    # Per-user reads and actions
    # ------------------------------------------------------------------

    @staticmethod
    async def list_for_user(
        db: AsyncSession, user: Optional[User], now: Optional[datetime] = None
    ) -> list[Notification]:
        """Visible, unexpired notifications for *user*, newest first."""
        user = require_user(user, "Fetching notifications")
        now = now or utcnow()
        result = await db.execute(
            select(Notification)
            .where(Notification.recipient_id.in_(_recipient_keys(user)))
            .order_by(Notification.created_at.desc())
        )
        return [
            n
            for n in result.scalars().all()
            if is_visible_to(n, user) and not _is_expired(n, now)
        ]

    @staticmethod
    async def mark_read(
        db: AsyncSession, notification_id: uuid.UUID, user: Optional[User]
    ) -> Notification:
        action = "Marking notification as read"
        user = require_user(user, action)
        result = await db.execute(
            select(Notification)
            .where(Notification.id == notification_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        notification = result.scalar_one_or_none()
        if notification is None or not is_visible_to(notification, user):
            raise NotFound("Notification not found", action=action)

        user_key = str(user.id)
        if user_key not in (notification.read_by or []):
            notification.read_by = [*(notification.read_by or []), user_key]
            await db.flush()
        return notification

    @staticmethod
    async def _lock_visible(db: AsyncSession, user: User) -> list[Notification]:
        """Re-read the visible rows under a row lock.

        Shared rows carry other users' ``read_by`` / ``cleared_by`` entries;
        the refreshed copy is the one the array append must extend.
        """
        ids = [n.id for n in await NotificationService.list_for_user(db, user)]
        if not ids:
            return []
        result = await db.execute(
            select(Notification)
            .where(Notification.id.in_(ids))
            .order_by(Notification.created_at.desc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def mark_all_read(db: AsyncSession, user: Optional[User]) -> int:
        """Mark every visible notification read; returns how many changed."""
        user = require_user(user, "Marking all notifications as read")
        user_key = str(user.id)
        changed = 0
        for notification in await NotificationService._lock_visible(db, user):
            if user_key not in (notification.read_by or []):
                notification.read_by = [*(notification.read_by or []), user_key]
                changed += 1
        if changed:
            await db.flush()
        return changed

    @staticmethod
    async def clear_all(db: AsyncSession, user: Optional[User]) -> int:
        """Hide every visible notification from *user*; returns the count."""
        user = require_user(user, "Clearing notifications")
        user_key = str(user.id)
        visible = await NotificationService._lock_visible(db, user)
        for notification in visible:
            if user_key not in (notification.cleared_by or []):
                notification.cleared_by = [*(notification.cleared_by or []), user_key]
        if visible:
            await db.flush()
        return len(visible)

    @staticmethod
    async def get_active_banner(
        db: AsyncSession, now: Optional[datetime] = None
    ) -> Optional[Notification]:
        now = now or utcnow()
        result = await db.execute(
            select(Notification)
            .where(Notification.recipient_id == RECIPIENT_GLOBAL_BANNER)
            .order_by(Notification.created_at.desc())
        )
        for banner in result.scalars().all():
            if not _is_expired(banner, now):
                return banner
        return None

    @staticmethod
    async def delete_global_notification(
        db: AsyncSession, actor: Optional[User], notification_id: uuid.UUID
    ) -> None:
        action = "Deleting global notification"
        require_elevated(actor, action)
        notification = await db.get(Notification, notification_id)
        if notification is None or notification.recipient_id != RECIPIENT_GLOBAL_BANNER:
            raise NotFound("Banner not found", action=action)
        await db.delete(notification)
        await db.flush()
        logger.info("Banner %s deleted by %s", notification_id, actor.id)
