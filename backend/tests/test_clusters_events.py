"""
Tests for clusters (points of interest) and events.

Covers ownership guards, hidden-cluster visibility, counters and their
daily analytics, reviews with rating recomputation, best-effort image
cleanup and the event year filter.

Usage:
    cd backend && pytest tests/test_clusters_events.py -v
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from tourism_hub.errors import (
    ConflictOrDuplicate,
    NotFound,
    PermissionDenied,
    ValidationFailure,
)
from tourism_hub.models.cluster import ClusterCreate, ClusterUpdate
from tourism_hub.models.db.base import utcnow
from tourism_hub.models.event import EventCreate, EventUpdate
from tourism_hub.services.cluster_service import ClusterService
from tourism_hub.services.event_service import EventService
from tourism_hub.storage import CLUSTER_IMAGE_BUCKET, EVENT_IMAGE_BUCKET


IMAGE_URL = (
    "https://project.supabase.co/storage/v1/object/public/cluster-images/u1/bako.jpg"
)


# ============================================================================
# HELPERS
# ============================================================================

def make_storage() -> MagicMock:
    storage = MagicMock()
    storage.remove_quietly = AsyncMock(return_value=True)
    return storage


async def add_cluster(db, owner, name="Bako National Park", **kwargs):
    cluster = await ClusterService.create_cluster(
        db, owner, ClusterCreate(name=name, category="nature", location="Kuching", **kwargs)
    )
    await db.commit()
    return cluster


async def add_event(db, owner, title="Rainforest World Music Festival", start=None, **kwargs):
    event = await EventService.create_event(
        db,
        owner,
        EventCreate(
            title=title,
            start_date=start or datetime(2025, 6, 20, 18, 0, tzinfo=timezone.utc),
            **kwargs,
        ),
    )
    await db.commit()
    return event


# ============================================================================
# CLUSTER CRUD
# ============================================================================

class TestClusterWrites:

    async def test_plain_users_cannot_create(self, db, users):
        with pytest.raises(PermissionDenied):
            await ClusterService.create_cluster(db, users["applicant"], ClusterCreate(name="X"))

    async def test_tourism_player_owns_what_they_create(self, db, users):
        cluster = await add_cluster(db, users["player"])
        assert cluster.owner_id == users["player"].id
        assert cluster.view_count == 0
        assert cluster.review_count == 0

    async def test_batch_create(self, db, users):
        items = [ClusterCreate(name=f"Longhouse {i}") for i in range(3)]
        assert await ClusterService.create_batch(db, users["editor"], items) == 3
        await db.commit()
        assert len(await ClusterService.list_clusters(db)) == 3

    async def test_only_owner_or_staff_can_update(self, db, users):
        cluster = await add_cluster(db, users["player"])
        with pytest.raises(PermissionDenied):
            await ClusterService.update_cluster(
                db, users["other"], cluster.id, ClusterUpdate(name="Mine now")
            )
        updated = await ClusterService.update_cluster(
            db, users["editor"], cluster.id, ClusterUpdate(description="Coastal park")
        )
        assert updated.description == "Coastal park"
        assert updated.name == "Bako National Park"

    async def test_replacing_image_removes_the_old_blob(self, db, users):
        storage = make_storage()
        cluster = await add_cluster(db, users["player"], image=IMAGE_URL)

        await ClusterService.update_cluster(
            db,
            users["player"],
            cluster.id,
            ClusterUpdate(image="https://cdn.example/new.jpg"),
            storage=storage,
        )
        storage.remove_quietly.assert_awaited_once_with(CLUSTER_IMAGE_BUCKET, ["u1/bako.jpg"])

    async def test_delete_removes_row_and_image(self, db, users):
        storage = make_storage()
        cluster = await add_cluster(db, users["player"], image=IMAGE_URL)

        await ClusterService.delete_cluster(db, users["player"], cluster.id, storage=storage)
        await db.commit()

        with pytest.raises(NotFound):
            await ClusterService.get_cluster(db, cluster.id)
        storage.remove_quietly.assert_awaited_once()

    async def test_transfer_ownership(self, db, users):
        cluster = await add_cluster(db, users["player"])
        with pytest.raises(PermissionDenied):
            await ClusterService.transfer_ownership(
                db, users["player"], cluster.id, users["other"].id
            )
        with pytest.raises(NotFound):
            await ClusterService.transfer_ownership(
                db, users["admin"], cluster.id, uuid.uuid4()
            )
        moved = await ClusterService.transfer_ownership(
            db, users["admin"], cluster.id, users["other"].id
        )
        assert moved.owner_id == users["other"].id


class TestClusterVisibility:

    async def test_hidden_clusters(self, db, users):
        await add_cluster(db, users["player"], "Public Park")
        await add_cluster(db, users["player"], "Draft Listing", is_hidden=True)

        anonymous = [c.name for c in await ClusterService.list_clusters(db)]
        owner = [c.name for c in await ClusterService.list_clusters(db, users["player"])]
        stranger = [c.name for c in await ClusterService.list_clusters(db, users["other"])]
        staff = [c.name for c in await ClusterService.list_clusters(db, users["editor"])]

        assert anonymous == ["Public Park"]
        assert stranger == ["Public Park"]
        assert owner == ["Draft Listing", "Public Park"]
        assert staff == ["Draft Listing", "Public Park"]


# ============================================================================
# COUNTERS AND ANALYTICS
# ============================================================================

class TestCounters:

    async def test_view_and_click_counts(self, db, users):
        cluster = await add_cluster(db, users["player"])

        assert await ClusterService.increment_counter(db, cluster.id, "view")
        assert await ClusterService.increment_counter(db, cluster.id, "view")
        assert await ClusterService.increment_counter(db, cluster.id, "click")
        await db.commit()

        assert (cluster.view_count, cluster.click_count) == (2, 1)
        series = await ClusterService.daily_analytics(db, users["player"], cluster.id, days=7)
        assert len(series) == 7
        assert series[-1] == {"date": utcnow().date(), "views": 2, "clicks": 1}
        assert all(day["views"] == 0 for day in series[:-1])

    async def test_missing_cluster_is_not_counted(self, db, users):
        assert await ClusterService.increment_counter(db, uuid.uuid4(), "view") is False

    async def test_unknown_counter_kind(self, db, users):
        cluster = await add_cluster(db, users["player"])
        with pytest.raises(ValidationFailure):
            await ClusterService.increment_counter(db, cluster.id, "share")

    async def test_analytics_are_owner_or_staff_only(self, db, users):
        cluster = await add_cluster(db, users["player"])
        with pytest.raises(PermissionDenied):
            await ClusterService.daily_analytics(db, users["other"], cluster.id)
        with pytest.raises(ValidationFailure):
            await ClusterService.daily_analytics(db, users["admin"], cluster.id, days=0)


# ============================================================================
# REVIEWS
# ============================================================================

class TestReviews:

    async def test_rating_is_recomputed(self, db, users):
        cluster = await add_cluster(db, users["player"])
        await ClusterService.add_review(db, users["applicant"], cluster.id, 5, "Stunning")
        await ClusterService.add_review(db, users["other"], cluster.id, 2)
        await db.commit()

        assert cluster.review_count == 2
        assert cluster.average_rating == pytest.approx(3.5)

        reviews = await ClusterService.list_reviews(db, cluster.id)
        assert {r["reviewer_name"] for r in reviews} == {"Ursula Applicant", "Oscar Other"}

    async def test_one_review_per_user(self, db, users):
        cluster = await add_cluster(db, users["player"])
        await ClusterService.add_review(db, users["applicant"], cluster.id, 4)
        await db.commit()
        with pytest.raises(ConflictOrDuplicate):
            await ClusterService.add_review(db, users["applicant"], cluster.id, 1)

    @pytest.mark.parametrize("rating", [0, 6])
    async def test_rating_range(self, db, users, rating):
        cluster = await add_cluster(db, users["player"])
        with pytest.raises(ValidationFailure):
            await ClusterService.add_review(db, users["applicant"], cluster.id, rating)

    async def test_anonymous_cannot_review(self, db, users):
        cluster = await add_cluster(db, users["player"])
        with pytest.raises(PermissionDenied):
            await ClusterService.add_review(db, None, cluster.id, 4)


# ============================================================================
# EVENTS
# ============================================================================

class TestEvents:

    async def test_list_by_year(self, db, users):
        await add_event(db, users["player"])
        await add_event(
            db,
            users["editor"],
            "Gawai Open House",
            start=datetime(2026, 6, 1, tzinfo=timezone.utc),
        )

        assert [e.title for e in await EventService.list_events(db, 2025)] == [
            "Rainforest World Music Festival"
        ]
        assert len(await EventService.list_events(db)) == 2
        assert await EventService.latest_update_for_year(db, 2024) is None
        assert await EventService.latest_update_for_year(db, 2026) is not None

    async def test_plain_users_cannot_create(self, db, users):
        with pytest.raises(PermissionDenied):
            await add_event(db, users["applicant"])

    async def test_update_rejects_end_before_start(self, db, users):
        event = await add_event(db, users["player"])
        with pytest.raises(ValidationFailure):
            await EventService.update_event(
                db,
                users["player"],
                event.id,
                EventUpdate(end_date=datetime(2025, 6, 1, tzinfo=timezone.utc)),
            )

    async def test_only_creator_or_staff_can_delete(self, db, users):
        storage = make_storage()
        event = await add_event(
            db,
            users["player"],
            image="https://project.supabase.co/storage/v1/object/public/event-images/e/1.png",
        )
        with pytest.raises(PermissionDenied):
            await EventService.delete_event(db, users["other"], event.id, storage=storage)

        await EventService.delete_event(db, users["admin"], event.id, storage=storage)
        await db.commit()
        storage.remove_quietly.assert_awaited_once_with(EVENT_IMAGE_BUCKET, ["e/1.png"])
        with pytest.raises(NotFound):
            await EventService.get_event(db, event.id)
