"""
Integration Tests for the Tourism Hub HTTP API

Drives the FastAPI app end to end against SQLite with mocked blob storage
and completion clients:
- Health and security headers
- Registration, login and bearer-token auth
- The grant application flow, including report upload cleanup
- Error body shape (detail / code / action / request_id)
- Notifications, banner, site config, itinerary, clusters and the
  change stream's auth guard

Usage:
    cd backend && pytest tests/test_api.py -v
"""

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from conftest import make_storage_client
from tourism_hub.database import create_session_factory
from tourism_hub.models.db.cluster import Cluster
from tourism_hub.realtime import ChangeFeed
from tourism_hub.security import limiter
from tourism_hub.storage import BlobStorage


APPLICATION = {
    "project_name": "Rainforest Music Trail",
    "project_description": "Weekend music walks.",
    "grant_category_id": "festivals",
    "amount_requested": 15000,
}


# ============================================================================
# HELPERS
# ============================================================================

def submit_application(client, headers) -> dict:
    response = client.post("/api/v1/applications", json=APPLICATION, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def advance_to_early_report_required(client, auth_headers, api_users) -> str:
    app_id = submit_application(client, auth_headers(api_users["applicant"]))["id"]
    offer = client.post(
        f"/api/v1/applications/{app_id}/offer",
        json={"amount": 5000, "notes": "Trim the venue budget"},
        headers=auth_headers(api_users["admin"]),
    )
    assert offer.status_code == 200, offer.text
    accept = client.post(
        f"/api/v1/applications/{app_id}/offer/accept",
        headers=auth_headers(api_users["applicant"]),
    )
    assert accept.status_code == 200, accept.text
    return app_id


def upload_report(client, headers, app_id, kind="early"):
    return client.post(
        f"/api/v1/applications/{app_id}/reports/{kind}",
        files={"file": (f"{kind}.pdf", b"%PDF-1.4 report", "application/pdf")},
        headers=headers,
    )


# ============================================================================
# HEALTH AND SECURITY
# ============================================================================

class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health_reports_capabilities(self, client):
        body = client.get("/api/v1/health").json()
        assert body["status"] == "healthy"
        assert "blob_storage" in body["capabilities"]
        assert "ai_completion" in body["capabilities"]
        assert body["degraded"] == []

    def test_security_headers(self, client):
        response = client.get("/")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Request-ID"]


# ============================================================================
# AUTH
# ============================================================================

class TestAuth:

    def test_register_login_and_me(self, client):
        registered = client.post(
            "/api/v1/auth/register",
            json={
                "email": "Tina@Example.com",
                "password": "s3cret-pass",
                "name": "Tina Traveller",
                "role": "Tourism Player",
            },
        )
        assert registered.status_code == 201, registered.text
        assert registered.json()["user"]["role"] == "Tourism Player"

        login = client.post(
            "/api/v1/auth/login",
            json={"email": "tina@example.com", "password": "s3cret-pass"},
        )
        assert login.status_code == 200
        token = login.json()["access_token"]

        me = client.get("/api/v1/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "tina@example.com"
        assert "hashed_password" not in me.json()

    def test_wrong_password(self, client):
        client.post(
            "/api/v1/auth/register",
            json={"email": "sam@example.com", "password": "s3cret-pass", "name": "Sam"},
        )
        response = client.post(
            "/api/v1/auth/login",
            json={"email": "sam@example.com", "password": "wrong-pass"},
        )
        assert response.status_code == 401

    def test_staff_roles_cannot_self_register(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={
                "email": "boss@example.com",
                "password": "s3cret-pass",
                "name": "Boss",
                "role": "Admin",
            },
        )
        assert response.status_code == 422

    def test_missing_and_invalid_tokens(self, client):
        assert client.get("/api/v1/me").status_code == 401
        response = client.get(
            "/api/v1/me", headers={"Authorization": "Bearer not-a-real-token"}
        )
        assert response.status_code == 401


# ============================================================================
# GRANT APPLICATIONS
# ============================================================================

class TestApplicationFlow:

    def test_submit_and_list(self, client, api_users, auth_headers):
        created = submit_application(client, auth_headers(api_users["applicant"]))
        assert created["status"] == "Pending"
        assert created["id"].startswith("GA-")
        assert created["status_history"][0]["status"] == "Pending"

        mine = client.get(
            "/api/v1/applications", headers=auth_headers(api_users["applicant"])
        ).json()
        assert mine["total"] == 1
        theirs = client.get(
            "/api/v1/applications", headers=auth_headers(api_users["other"])
        ).json()
        assert theirs["total"] == 0

    def test_domain_errors_carry_code_action_and_request_id(
        self, client, api_users, auth_headers
    ):
        app_id = submit_application(client, auth_headers(api_users["applicant"]))["id"]
        response = client.post(
            f"/api/v1/applications/{app_id}/reject",
            json={"notes": "Self-rejection"},
            headers=auth_headers(api_users["applicant"]),
        )
        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "PERMISSION_DENIED"
        assert body["action"] == "Rejecting application"
        assert body["request_id"] == response.headers["X-Request-ID"]

    def test_wrong_status_is_409(self, client, api_users, auth_headers):
        app_id = submit_application(client, auth_headers(api_users["applicant"]))["id"]
        response = client.post(
            f"/api/v1/applications/{app_id}/complete",
            json={"amount": 100},
            headers=auth_headers(api_users["admin"]),
        )
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    def test_unknown_application_is_404(self, client, api_users, auth_headers):
        response = client.get(
            "/api/v1/applications/GA-000000-0000",
            headers=auth_headers(api_users["admin"]),
        )
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_offer_accept_and_report_upload(
        self, client, api_users, auth_headers, storage_client
    ):
        app_id = advance_to_early_report_required(client, auth_headers, api_users)

        response = upload_report(client, auth_headers(api_users["applicant"]), app_id)
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["status"] == "Early Report Submitted"
        assert body["amount_approved"] == 5000
        assert body["early_report_files"][0]["file_name"] == "early.pdf"

        bucket = storage_client.storage.from_.return_value
        storage_client.storage.from_.assert_any_call("grant-early-report-files")
        bucket.upload.assert_called_once()
        bucket.remove.assert_not_called()

        url = client.get(
            f"/api/v1/applications/{app_id}/reports/early/0/url",
            headers=auth_headers(api_users["admin"]),
        )
        assert url.status_code == 200
        assert url.json()["url"].startswith("https://storage.example/signed/")

    def test_refused_report_transition_removes_the_upload(
        self, client, api_users, auth_headers, storage_client
    ):
        app_id = submit_application(client, auth_headers(api_users["applicant"]))["id"]

        response = upload_report(client, auth_headers(api_users["applicant"]), app_id)
        assert response.status_code == 409
        bucket = storage_client.storage.from_.return_value
        bucket.upload.assert_called_once()
        uploaded_path = bucket.upload.call_args.args[0]
        bucket.remove.assert_called_once_with([uploaded_path])

        detail = client.get(
            f"/api/v1/applications/{app_id}", headers=auth_headers(api_users["applicant"])
        ).json()
        assert detail["early_report_files"] == []

    def test_report_upload_checks_visibility_before_storage(
        self, client, api_users, auth_headers, storage_client
    ):
        app_id = advance_to_early_report_required(client, auth_headers, api_users)
        response = upload_report(client, auth_headers(api_users["other"]), app_id)
        assert response.status_code == 403
        storage_client.storage.from_.return_value.upload.assert_not_called()

    def test_invalid_amount_is_422(self, client, api_users, auth_headers):
        app_id = submit_application(client, auth_headers(api_users["applicant"]))["id"]
        response = client.post(
            f"/api/v1/applications/{app_id}/offer",
            json={"amount": -1},
            headers=auth_headers(api_users["admin"]),
        )
        assert response.status_code == 422

    def test_grant_analytics_is_staff_only(self, client, api_users, auth_headers):
        submit_application(client, auth_headers(api_users["applicant"]))
        denied = client.get(
            "/api/v1/applications/analytics", headers=auth_headers(api_users["applicant"])
        )
        assert denied.status_code == 403
        stats = client.get(
            "/api/v1/applications/analytics", headers=auth_headers(api_users["editor"])
        ).json()
        assert stats["by_status"] == {"Pending": 1}


# ============================================================================
# NOTIFICATIONS, BANNER AND CONFIG
# ============================================================================

class TestNotifications:

    def test_admins_are_notified_of_new_applications(self, client, api_users, auth_headers):
        submit_application(client, auth_headers(api_users["applicant"]))
        admin = auth_headers(api_users["admin"])

        listing = client.get("/api/v1/notifications", headers=admin).json()
        assert listing["unread_count"] == 1
        assert listing["notifications"][0]["type"] == "new_app"

        read_all = client.post("/api/v1/notifications/read-all", headers=admin)
        assert read_all.json() == {"count": 1}
        assert client.get("/api/v1/notifications", headers=admin).json()["unread_count"] == 0

    def test_banner_lifecycle(self, client, api_users, auth_headers):
        assert client.get("/api/v1/banner").json() is None

        denied = client.put(
            "/api/v1/admin/banner",
            json={"message": "Hello"},
            headers=auth_headers(api_users["player"]),
        )
        assert denied.status_code == 403

        created = client.put(
            "/api/v1/admin/banner",
            json={"message": "Gawai holiday hours apply"},
            headers=auth_headers(api_users["editor"]),
        )
        assert created.status_code == 200
        assert client.get("/api/v1/banner").json()["message"] == "Gawai holiday hours apply"

        deleted = client.delete(
            f"/api/v1/admin/banner/{created.json()['id']}",
            headers=auth_headers(api_users["admin"]),
        )
        assert deleted.status_code == 204
        assert client.get("/api/v1/banner").json() is None

    def test_broadcast(self, client, api_users, auth_headers):
        response = client.post(
            "/api/v1/admin/notifications/broadcast",
            json={"message": "New festival calendar is live"},
            headers=auth_headers(api_users["admin"]),
        )
        assert response.json() == {"count": len(api_users)}
        listing = client.get(
            "/api/v1/notifications", headers=auth_headers(api_users["player"])
        ).json()
        assert [n["type"] for n in listing["notifications"]] == ["broadcast"]


class TestSiteConfig:

    def test_public_read_and_staff_write(self, client, api_users, auth_headers):
        assert client.get("/api/v1/config").json()["maintenance_enabled"] is False

        denied = client.patch(
            "/api/v1/config",
            json={"maintenance_enabled": True},
            headers=auth_headers(api_users["applicant"]),
        )
        assert denied.status_code == 403

        updated = client.patch(
            "/api/v1/config",
            json={"maintenance_enabled": True, "maintenance_message": "Back at 9"},
            headers=auth_headers(api_users["admin"]),
        )
        assert updated.status_code == 200
        assert client.get("/api/v1/config").json()["maintenance_message"] == "Back at 9"


# ============================================================================
# CONTENT
# ============================================================================

class TestContent:

    def test_cluster_create_count_and_review(self, client, api_users, auth_headers):
        created = client.post(
            "/api/v1/clusters",
            json={"name": "Niah Caves", "category": "heritage"},
            headers=auth_headers(api_users["player"]),
        )
        assert created.status_code == 201, created.text
        cluster_id = created.json()["id"]

        assert client.post(f"/api/v1/clusters/{cluster_id}/view").json() == {"counted": True}
        assert client.post(f"/api/v1/clusters/{cluster_id}/bogus").status_code == 404

        review = client.post(
            f"/api/v1/clusters/{cluster_id}/reviews",
            json={"rating": 5, "comment": "Breathtaking"},
            headers=auth_headers(api_users["applicant"]),
        )
        assert review.status_code == 201, review.text
        assert review.json()["reviewer_name"] == "Ursula Applicant"

        cluster = client.get(f"/api/v1/clusters/{cluster_id}").json()
        assert cluster["view_count"] == 1
        assert cluster["review_count"] == 1

    def test_plain_users_cannot_create_clusters(self, client, api_users, auth_headers):
        response = client.post(
            "/api/v1/clusters",
            json={"name": "Nope"},
            headers=auth_headers(api_users["applicant"]),
        )
        assert response.status_code == 403

    def test_itinerary(self, client, api_users, auth_headers):
        headers = auth_headers(api_users["applicant"])
        assert client.get("/api/v1/me/itinerary", headers=headers).json()["items"] == []

        item = {"item_id": "c-1", "item_type": "cluster", "item_name": "Niah Caves"}
        assert client.post("/api/v1/me/itinerary/items", json=item, headers=headers).status_code == 201
        duplicate = client.post("/api/v1/me/itinerary/items", json=item, headers=headers)
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "CONFLICT"

        cleared = client.delete("/api/v1/me/itinerary/items", headers=headers)
        assert cleared.json() == {"count": 1}

    def test_anonymous_feedback(self, client):
        response = client.post(
            "/api/v1/feedback",
            json={"content": "Love the new map", "is_anonymous": True},
        )
        assert response.status_code == 201
        assert response.json()["user_id"] is None


class TestChangeStream:

    def test_requires_a_token(self, client):
        assert client.get("/api/v1/changes/stream").status_code == 401

    def test_unknown_tables_are_rejected(self, client, api_users, auth_headers):
        response = client.get(
            "/api/v1/changes/stream?tables=clusters,passwords",
            headers=auth_headers(api_users["applicant"]),
        )
        assert response.status_code == 400


# ============================================================================
# STATE CACHE
# ============================================================================

class TestStateCache:

    @pytest.fixture
    def cached_client(self, api_db_path, api_users, ai_client):
        from tourism_hub.main import create_app
        from tourism_hub.services.ai_service import AiService

        sync_engine = create_engine(f"sqlite:///{api_db_path}")
        with Session(sync_engine) as session:
            session.add_all(
                [
                    Cluster(id=uuid.uuid4(), name="Mulu Pinnacles", owner_id=api_users["player"].id),
                    Cluster(
                        id=uuid.uuid4(),
                        name="Unlisted Cave",
                        owner_id=api_users["player"].id,
                        is_hidden=True,
                    ),
                ]
            )
            session.commit()
        sync_engine.dispose()

        limiter.reset()
        feed = ChangeFeed()
        engine = create_async_engine(f"sqlite+aiosqlite:///{api_db_path}", poolclass=NullPool)
        app = create_app(
            session_factory=create_session_factory(engine, feed),
            change_feed=feed,
            storage=BlobStorage(make_storage_client()),
            ai_service=AiService(ai_client, "test-model"),
            enable_state_cache=True,
        )
        with TestClient(app) as test_client:
            yield test_client

    def test_anonymous_cluster_list_is_served_from_cache(self, cached_client):
        names = [c["name"] for c in cached_client.get("/api/v1/clusters").json()]
        assert names == ["Mulu Pinnacles"]

    def test_monitoring_reports_collections(self, cached_client, api_users, auth_headers):
        denied = cached_client.get(
            "/api/v1/admin/monitoring/state", headers=auth_headers(api_users["editor"])
        )
        assert denied.status_code == 403

        body = cached_client.get(
            "/api/v1/admin/monitoring/state", headers=auth_headers(api_users["admin"])
        ).json()
        assert body["enabled"] is True
        assert body["collections"]["clusters"]["rows"] == 2
        assert "subscribers" in body
