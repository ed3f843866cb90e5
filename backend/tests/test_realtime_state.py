"""
Tests for the committed-change feed and the AppState read cache.

Usage:
    cd backend && pytest tests/test_realtime_state.py -v
"""

import asyncio
import uuid

import pytest

from tourism_hub.models.cluster import ClusterCreate, ClusterUpdate
from tourism_hub.models.db.cluster import Cluster
from tourism_hub.realtime import ChangeFeed, TableChange
from tourism_hub.services.cluster_service import ClusterService
from tourism_hub.services.itinerary_service import ItineraryService
from tourism_hub.state import AppState


# ============================================================================
# HELPERS
# ============================================================================

def drain(queue: asyncio.Queue) -> list[TableChange]:
    changes = []
    while not queue.empty():
        changes.append(queue.get_nowait())
    return changes


async def add_cluster(db, owner, name="Bako National Park", **kwargs) -> Cluster:
    cluster = await ClusterService.create_cluster(
        db, owner, ClusterCreate(name=name, category="nature", **kwargs)
    )
    await db.commit()
    return cluster


async def wait_for(predicate, timeout: float = 2.0) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


# ============================================================================
# CHANGE FEED
# ============================================================================

class TestChangeFeed:

    async def test_publish_reaches_every_subscriber(self):
        feed = ChangeFeed()
        async with feed.subscribe() as first, feed.subscribe() as second:
            assert feed.subscriber_count == 2
            feed.publish(TableChange("clusters", "insert", "abc"))
            assert first.get_nowait().record_id == "abc"
            assert second.get_nowait().table == "clusters"
        assert feed.subscriber_count == 0

    def test_change_serializes_for_the_wire(self):
        payload = TableChange("events", "delete", "42").to_dict()
        assert payload["table"] == "events"
        assert payload["op"] == "delete"
        assert payload["record_id"] == "42"
        assert "committed_at" in payload


class TestSessionHooks:

    async def test_commit_publishes_inserts(self, db, users, feed):
        async with feed.subscribe() as queue:
            cluster = await add_cluster(db, users["player"])
            changes = drain(queue)
        assert ("clusters", "insert", str(cluster.id)) in {
            (c.table, c.op, c.record_id) for c in changes
        }

    async def test_rollback_publishes_nothing(self, db, users, feed):
        async with feed.subscribe() as queue:
            await ClusterService.create_cluster(
                db, users["player"], ClusterCreate(name="Never saved")
            )
            await db.rollback()
            assert drain(queue) == []

    async def test_update_and_delete_are_published(self, db, users, feed):
        cluster = await add_cluster(db, users["player"])
        async with feed.subscribe() as queue:
            await ClusterService.update_cluster(
                db, users["player"], cluster.id, ClusterUpdate(name="Bako NP")
            )
            await db.commit()
            await ClusterService.delete_cluster(db, users["admin"], cluster.id)
            await db.commit()
            ops = [(c.table, c.op) for c in drain(queue)]
        assert ("clusters", "update") in ops
        assert ("clusters", "delete") in ops

    async def test_bulk_delete_is_recorded_without_an_id(self, db, users, feed):
        await ItineraryService.add_item(db, users["applicant"], "c-1", "cluster", "Bako")
        await db.commit()
        async with feed.subscribe() as queue:
            assert await ItineraryService.clear(db, users["applicant"]) == 1
            await db.commit()
            changes = [c for c in drain(queue) if c.table == "itinerary_items"]
        assert [(c.op, c.record_id) for c in changes] == [("delete", None)]


# ============================================================================
# APP STATE
# ============================================================================

class TestAppState:

    async def test_reload_skips_hidden_clusters_for_public_reads(
        self, db, users, session_factory
    ):
        await add_cluster(db, users["player"], "Visible")
        await add_cluster(db, users["player"], "Secret", is_hidden=True)

        state = AppState(session_factory)
        await state.reload_all()

        assert [c["name"] for c in state.clusters()] == ["Visible"]
        assert len(state.clusters(include_hidden=True)) == 2
        assert state.collection("clusters").loaded_at is not None

    async def test_apply_change_insert_update_delete(self, db, users, session_factory):
        state = AppState(session_factory)
        await state.reload_all()
        assert state.clusters() == []

        cluster = await add_cluster(db, users["player"])
        await state.apply_change(TableChange("clusters", "insert", str(cluster.id)))
        assert state.clusters()[0]["name"] == "Bako National Park"

        await ClusterService.update_cluster(
            db, users["player"], cluster.id, ClusterUpdate(name="Bako NP")
        )
        await db.commit()
        await state.apply_change(TableChange("clusters", "update", str(cluster.id)))
        assert state.clusters()[0]["name"] == "Bako NP"

        await state.apply_change(TableChange("clusters", "delete", str(cluster.id)))
        assert state.clusters() == []

    async def test_review_changes_reload_clusters(self, db, users, session_factory):
        cluster = await add_cluster(db, users["player"])
        state = AppState(session_factory)
        await state.reload_all()

        await ClusterService.add_review(db, users["applicant"], cluster.id, 4, "Great")
        await db.commit()
        await state.apply_change(
            TableChange("cluster_reviews", "insert", str(uuid.uuid4()))
        )
        assert state.clusters()[0]["review_count"] == 1

    async def test_untracked_tables_are_ignored(self, session_factory):
        state = AppState(session_factory)
        await state.reload_all()
        await state.apply_change(TableChange("grant_applications", "insert", "GA-1"))
        assert state.clusters() == []

    async def test_failing_loader_serves_empty_list_with_notice(self):
        def broken_factory():
            raise RuntimeError("database is down")

        state = AppState(broken_factory)
        await state.reload("clusters")

        assert state.clusters() == []
        assert "RuntimeError" in state.collection("clusters").error
        assert any("clusters" in notice for notice in state.notices)

    async def test_started_state_follows_the_feed(self, db, users, session_factory, feed):
        state = AppState(session_factory, feed)
        await state.start()
        try:
            await add_cluster(db, users["player"], "Semenggoh")
            assert await wait_for(lambda: len(state.clusters()) == 1)
            assert state.clusters()[0]["name"] == "Semenggoh"
        finally:
            await state.stop()
        assert feed.subscriber_count == 0

    @pytest.mark.parametrize("table", ["clusters", "events", "app_config"])
    async def test_collections_exist(self, session_factory, table):
        state = AppState(session_factory)
        assert table in state.tables
        assert state.collection(table).rows == {}
