"""
Shared fixtures for the Tourism Hub test suite.

Service tests run against a throwaway SQLite file (aiosqlite) per test and
use the same session factory and change feed wiring as the app.  API tests
build the app with ``create_app`` and drive it through ``TestClient``;
their schema and seed users are written with a plain synchronous engine so
nothing async is bound to pytest's event loop.

Usage:
    cd backend && pytest tests -v
"""

import os
import sys
import uuid
from typing import Callable, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

os.environ.setdefault("JWT_SECRET", "tourism-hub-test-secret")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ["TOURISM_HUB_ENABLE_STATE_CACHE"] = "false"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

import tourism_hub.models.db  # noqa: E402,F401
from tourism_hub.auth import create_access_token  # noqa: E402
from tourism_hub.database import (  # noqa: E402
    Base,
    create_all,
    create_session_factory,
)
from tourism_hub.models.db.user import User  # noqa: E402
from tourism_hub.realtime import ChangeFeed  # noqa: E402
from tourism_hub.security import limiter  # noqa: E402
from tourism_hub.services.access_control import (  # noqa: E402
    ROLE_ADMIN,
    ROLE_EDITOR,
    ROLE_TOURISM_PLAYER,
    ROLE_USER,
    TIER_FREE,
)
from tourism_hub.services.ai_service import AiService  # noqa: E402
from tourism_hub.services.config_service import invalidate_cache  # noqa: E402
from tourism_hub.storage import BlobStorage  # noqa: E402


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================

def make_user(role: str = ROLE_USER, name: str = None, email: str = None) -> User:
    """Factory for a User row without a password hash."""
    user_id = uuid.uuid4()
    return User(
        id=user_id,
        email=email or f"{user_id.hex[:10]}@example.com",
        name=name or f"{role} {user_id.hex[:4]}",
        role=role,
        tier=TIER_FREE,
        hashed_password=None,
    )


def make_user_set() -> Dict[str, User]:
    """One account per role plus a second plain user."""
    return {
        "admin": make_user(ROLE_ADMIN, "Aminah Admin"),
        "editor": make_user(ROLE_EDITOR, "Edwin Editor"),
        "player": make_user(ROLE_TOURISM_PLAYER, "Petra Player"),
        "applicant": make_user(ROLE_USER, "Ursula Applicant"),
        "other": make_user(ROLE_USER, "Oscar Other"),
    }


def make_completion(content: str) -> MagicMock:
    """Mimic ``ChatCompletion`` closely enough for ``AiService``."""
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


def make_storage_client() -> MagicMock:
    """Mock Supabase client; every bucket shares one mock."""
    client = MagicMock()
    bucket = client.storage.from_.return_value
    bucket.create_signed_url.return_value = {
        "signedURL": "https://storage.example/signed/report.pdf?token=abc"
    }
    bucket.get_public_url.side_effect = (
        lambda path: f"https://storage.example/storage/v1/object/public/cluster-images/{path}"
    )
    return client


def make_ai_client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=make_completion("A lovely place to visit.")
    )
    return client


# ============================================================================
# SERVICE FIXTURES (async, per-test SQLite file)
# ============================================================================

@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'service.db'}", poolclass=NullPool
    )
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def session_factory(engine, feed):
    return create_session_factory(engine, feed)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def users(db) -> Dict[str, User]:
    users = make_user_set()
    db.add_all(users.values())
    await db.commit()
    return users


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    invalidate_cache()
    yield
    invalidate_cache()


# ============================================================================
# API FIXTURES (TestClient)
# ============================================================================

@pytest.fixture
def api_db_path(tmp_path):
    return tmp_path / "api.db"


@pytest.fixture
def api_users(api_db_path) -> Dict[str, User]:
    """Create the schema and seed one user per role with a sync engine."""
    sync_engine = create_engine(f"sqlite:///{api_db_path}")
    Base.metadata.create_all(sync_engine)
    users = make_user_set()
    with Session(sync_engine, expire_on_commit=False) as session:
        session.add_all(users.values())
        session.commit()
    sync_engine.dispose()
    return users


@pytest.fixture
def storage_client():
    return make_storage_client()


@pytest.fixture
def ai_client():
    return make_ai_client()


@pytest.fixture
def api_app(api_db_path, api_users, storage_client, ai_client):
    from tourism_hub.main import create_app

    limiter.reset()
    change_feed = ChangeFeed()
    # Connects lazily, inside the TestClient's event loop
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{api_db_path}", poolclass=NullPool
    )
    return create_app(
        session_factory=create_session_factory(engine, change_feed),
        change_feed=change_feed,
        storage=BlobStorage(storage_client),
        ai_service=AiService(ai_client, "test-model"),
        enable_state_cache=False,
    )


@pytest.fixture
def client(api_app):
    with TestClient(api_app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[[User], Dict[str, str]]:
    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _headers
