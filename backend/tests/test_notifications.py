"""
Tests for notification dispatch, visibility and per-user read/clear state.

Usage:
    cd backend && pytest tests/test_notifications.py -v
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from tourism_hub.errors import NotFound, PermissionDenied, ValidationFailure
from tourism_hub.models.db.base import utcnow
from tourism_hub.models.db.notification import Notification
from tourism_hub.services.notification_service import (
    RECIPIENT_ADMINS,
    RECIPIENT_GLOBAL_BANNER,
    RECIPIENT_GRANT_ADMINS,
    NotificationService,
    is_visible_to,
)


# ============================================================================
# HELPERS
# ============================================================================

def make_notification(recipient_id: str, message: str = "Hello", **kwargs) -> Notification:
    return Notification(
        recipient_id=recipient_id,
        message=message,
        type=kwargs.pop("type", "info"),
        read_by=kwargs.pop("read_by", []),
        cleared_by=kwargs.pop("cleared_by", []),
        **kwargs,
    )


async def banner_count(db) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.recipient_id == RECIPIENT_GLOBAL_BANNER
        )
    )
    return result.scalar()


# ============================================================================
# VISIBILITY
# ============================================================================

class TestVisibility:

    def test_recipient_classes(self):
        from conftest import make_user_set

        users = make_user_set()
        grant_admins = make_notification(RECIPIENT_GRANT_ADMINS)
        admins = make_notification(RECIPIENT_ADMINS)
        banner = make_notification(RECIPIENT_GLOBAL_BANNER)
        personal = make_notification(str(users["applicant"].id))

        assert is_visible_to(grant_admins, users["admin"])
        assert not is_visible_to(grant_admins, users["editor"])
        assert is_visible_to(admins, users["editor"])
        assert not is_visible_to(admins, users["player"])
        assert all(is_visible_to(banner, u) for u in users.values())
        assert is_visible_to(personal, users["applicant"])
        assert not is_visible_to(personal, users["other"])

    def test_cleared_notifications_are_hidden(self):
        from conftest import make_user

        user = make_user()
        notification = make_notification(str(user.id), cleared_by=[str(user.id)])
        assert not is_visible_to(notification, user)


class TestListForUser:

    async def test_only_visible_unexpired_rows_are_listed(self, db, users):
        now = utcnow()
        db.add_all(
            [
                make_notification(str(users["applicant"].id), "mine"),
                make_notification(str(users["other"].id), "theirs"),
                make_notification(RECIPIENT_GRANT_ADMINS, "admins only"),
                make_notification(
                    str(users["applicant"].id),
                    "expired",
                    expires_at=now - timedelta(minutes=1),
                ),
            ]
        )
        await db.commit()

        messages = [
            n.message for n in await NotificationService.list_for_user(db, users["applicant"])
        ]
        assert messages == ["mine"]

        admin_messages = {
            n.message for n in await NotificationService.list_for_user(db, users["admin"])
        }
        assert admin_messages == {"admins only"}

    async def test_requires_sign_in(self, db):
        with pytest.raises(PermissionDenied):
            await NotificationService.list_for_user(db, None)


# ============================================================================
# READ / CLEAR
# ============================================================================

class TestReadState:

    async def test_mark_read_is_idempotent(self, db, users):
        user = users["applicant"]
        notification = await NotificationService.notify_user(db, user.id, "Offer made")
        await db.commit()

        await NotificationService.mark_read(db, notification.id, user)
        await NotificationService.mark_read(db, notification.id, user)
        await db.commit()

        assert notification.read_by == [str(user.id)]

    async def test_mark_read_on_invisible_notification(self, db, users):
        notification = await NotificationService.notify_user(
            db, users["applicant"].id, "Private"
        )
        await db.commit()
        with pytest.raises(NotFound):
            await NotificationService.mark_read(db, notification.id, users["other"])

    async def test_mark_all_read_counts_changes(self, db, users):
        user = users["admin"]
        await NotificationService.notify_admins(db, "New application")
        await NotificationService.notify_user(db, user.id, "Personal")
        await db.commit()

        assert await NotificationService.mark_all_read(db, user) == 2
        assert await NotificationService.mark_all_read(db, user) == 0

    async def test_shared_rows_track_readers_separately(self, db, users):
        notification = await NotificationService.notify_admins(db, "New application")
        await db.commit()

        await NotificationService.mark_read(db, notification.id, users["admin"])
        await db.commit()
        assert str(users["admin"].id) in notification.read_by
        assert str(users["editor"].id) not in notification.read_by

    async def test_clear_all_hides_for_this_user_only(self, db, users):
        await NotificationService.set_banner(db, users["admin"], "Site maintenance tonight")
        await db.commit()

        assert await NotificationService.clear_all(db, users["applicant"]) == 1
        await db.commit()

        assert await NotificationService.list_for_user(db, users["applicant"]) == []
        assert len(await NotificationService.list_for_user(db, users["other"])) == 1


class TestSharedRowUpdates:
    """Two sessions appending to the same shared row must both land."""

    async def test_interleaved_clear_all_keeps_both_users(self, db, users, session_factory):
        banner = await NotificationService.set_banner(db, users["admin"], "Gawai hours")
        await db.commit()

        async with session_factory() as first, session_factory() as second:
            # The second session has already loaded the banner before the first commits
            assert len(await NotificationService.list_for_user(second, users["applicant"])) == 1

            assert await NotificationService.clear_all(first, users["admin"]) == 1
            await first.commit()
            assert await NotificationService.clear_all(second, users["applicant"]) == 1
            await second.commit()

        await db.refresh(banner)
        assert set(banner.cleared_by) == {str(users["admin"].id), str(users["applicant"].id)}
        assert await NotificationService.list_for_user(db, users["admin"]) == []

    async def test_interleaved_mark_all_read_keeps_both_readers(
        self, db, users, session_factory
    ):
        shared = make_notification(RECIPIENT_ADMINS, "Quarterly report due")
        db.add(shared)
        await db.commit()

        async with session_factory() as first, session_factory() as second:
            assert len(await NotificationService.list_for_user(second, users["editor"])) == 1

            assert await NotificationService.mark_all_read(first, users["admin"]) == 1
            await first.commit()
            assert await NotificationService.mark_all_read(second, users["editor"]) == 1
            await second.commit()

        await db.refresh(shared)
        assert set(shared.read_by) == {str(users["admin"].id), str(users["editor"].id)}


# ============================================================================
# BROADCAST AND BANNER
# ============================================================================

class TestBroadcast:

    async def test_broadcast_creates_one_row_per_user(self, db, users):
        count = await NotificationService.broadcast_to_all_users(
            db, users["editor"], "Festival season is here"
        )
        await db.commit()

        assert count == len(users)
        for user in users.values():
            listed = await NotificationService.list_for_user(db, user)
            assert [n.type for n in listed] == ["broadcast"]

    async def test_non_staff_broadcast_writes_nothing(self, db, users):
        with pytest.raises(PermissionDenied):
            await NotificationService.broadcast_to_all_users(db, users["player"], "Hi")
        result = await db.execute(select(func.count(Notification.id)))
        assert result.scalar() == 0

    async def test_empty_message(self, db, users):
        with pytest.raises(ValidationFailure):
            await NotificationService.broadcast_to_all_users(db, users["admin"], "   ")


class TestBanner:

    async def test_set_banner_replaces_existing(self, db, users):
        await NotificationService.set_banner(db, users["admin"], "First")
        await NotificationService.set_banner(db, users["editor"], "Second")
        await db.commit()

        assert await banner_count(db) == 1
        banner = await NotificationService.get_active_banner(db)
        assert banner.message == "Second"

    async def test_banner_expiry_must_be_in_the_future(self, db, users):
        with pytest.raises(ValidationFailure):
            await NotificationService.set_banner(
                db, users["admin"], "Old news", utcnow() - timedelta(hours=1)
            )

    async def test_expired_banner_is_not_active(self, db, users):
        await NotificationService.set_banner(
            db, users["admin"], "Short lived", utcnow() + timedelta(minutes=5)
        )
        await db.commit()

        assert await NotificationService.get_active_banner(db) is not None
        later = utcnow() + timedelta(minutes=10)
        assert await NotificationService.get_active_banner(db, now=later) is None

    async def test_only_staff_set_banner(self, db, users):
        with pytest.raises(PermissionDenied):
            await NotificationService.set_banner(db, users["applicant"], "Hello")

    async def test_delete_banner(self, db, users):
        banner = await NotificationService.set_banner(db, users["admin"], "Bye soon")
        await db.commit()

        await NotificationService.delete_global_notification(db, users["admin"], banner.id)
        await db.commit()
        assert await banner_count(db) == 0

    async def test_delete_refuses_non_banner_rows(self, db, users):
        personal = await NotificationService.notify_user(db, users["applicant"].id, "Hi")
        await db.commit()
        with pytest.raises(NotFound):
            await NotificationService.delete_global_notification(
                db, users["admin"], personal.id
            )
