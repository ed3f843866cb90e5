"""
Tourism Hub API - FastAPI backend for the Sarawak tourism portal
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.gzip import GZipMiddleware

from tourism_hub import __version__
from tourism_hub.database import (
    DATABASE_URL,
    create_engine_for_url,
    create_session_factory,
)
from tourism_hub.openai_provider import create_completion_client, get_chat_model
from tourism_hub.realtime import ChangeFeed
from tourism_hub.routers import (
    ai,
    analytics,
    applications,
    auth,
    changes,
    clusters,
    config,
    events,
    feedback,
    health,
    itinerary,
    notifications,
)
from tourism_hub.routers import admin as admin_router
from tourism_hub.security import setup_security
from tourism_hub.services.ai_service import AiService
from tourism_hub.state import AppState
from tourism_hub.storage import BlobStorage

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# =============================================================================
# CORS Configuration
# =============================================================================

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
PRODUCTION_ORIGIN = "https://tourism.sarawak.gov.my"


def get_allowed_origins() -> list[str]:
    """Environment-aware CORS origins.

    Production accepts HTTPS, non-localhost origins only; development
    defaults to the local frontend dev servers.
    """
    if ENVIRONMENT == "production":
        raw = os.getenv("ALLOWED_ORIGINS", PRODUCTION_ORIGIN).split(",")
        origins = []
        for origin in raw:
            origin = origin.strip()
            if not origin:
                continue
            if not origin.startswith("https://"):
                logger.warning("[CORS] Rejecting non-HTTPS origin in production: %s", origin)
                continue
            if "localhost" in origin or "127.0.0.1" in origin:
                logger.warning("[CORS] Rejecting localhost origin in production: %s", origin)
                continue
            origins.append(origin)
        if not origins:
            logger.warning("[CORS] No valid origins configured, using default production origin")
            origins = [PRODUCTION_ORIGIN]
        return origins

    default_origins = "http://localhost:3000,http://localhost:5173"
    raw = os.getenv("ALLOWED_ORIGINS", default_origins).split(",")
    return [origin.strip() for origin in raw if origin.strip()]


def _state_cache_enabled() -> bool:
    return os.getenv("TOURISM_HUB_ENABLE_STATE_CACHE", "true").lower() == "true"


# =============================================================================
# Application factory
# =============================================================================


def create_app(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    change_feed: Optional[ChangeFeed] = None,
    storage: Optional[BlobStorage] = None,
    ai_service: Optional[AiService] = None,
    enable_state_cache: Optional[bool] = None,
) -> FastAPI:
    """Build the API.

    Every argument defaults to what the environment configures; tests pass
    an SQLite session factory (built with the same *change_feed*) and mocked
    storage / AI handles.
    """
    use_state_cache = (
        _state_cache_enabled() if enable_state_cache is None else enable_state_cache
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        feed = change_feed or ChangeFeed()
        factory = session_factory
        if factory is None:
            if not DATABASE_URL:
                raise RuntimeError(
                    "Database not configured. Set DATABASE_URL environment variable."
                )
            engine = create_engine_for_url(DATABASE_URL)
            factory = create_session_factory(engine, feed)

        app.state.change_feed = feed
        app.state.session_factory = factory
        app.state.storage = storage or BlobStorage.from_env()
        app.state.ai_service = ai_service or AiService(
            create_completion_client(), get_chat_model()
        )
        app.state.app_state = None
        if use_state_cache:
            app.state.app_state = AppState(factory, feed)
            await app.state.app_state.start()

        logger.info("Tourism Hub API %s started (%s)", __version__, ENVIRONMENT)
        try:
            yield
        finally:
            if app.state.app_state is not None:
                await app.state.app_state.stop()
            if engine is not None:
                await engine.dispose()
            logger.info("Tourism Hub API stopped")

    app = FastAPI(
        title="Tourism Hub API",
        description="Sarawak tourism portal: grants, attractions, events and trips",
        version=__version__,
        lifespan=lifespan,
    )

    allowed_origins = get_allowed_origins()
    logger.info("[CORS] Environment: %s, allowed origins: %s", ENVIRONMENT, allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
    )
    # Compresses responses larger than 500 bytes
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # Must come after CORS so error responses keep their CORS headers
    setup_security(app, allowed_origins)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(applications.router)
    app.include_router(notifications.router)
    app.include_router(clusters.router)
    app.include_router(events.router)
    app.include_router(itinerary.router)
    app.include_router(feedback.router)
    app.include_router(analytics.router)
    app.include_router(ai.router)
    app.include_router(config.router)
    app.include_router(changes.router)
    app.include_router(admin_router.router)
    return app


app = create_app()
