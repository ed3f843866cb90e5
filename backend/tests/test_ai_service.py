"""
Tests for the AI copywriting / trip planning service with a mocked client.

Usage:
    cd backend && pytest tests/test_ai_service.py -v
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from conftest import make_completion
from tourism_hub.errors import UpstreamServiceFailure, ValidationFailure
from tourism_hub.services import ai_service
from tourism_hub.services.ai_service import AiService


ITINERARY_JSON = json.dumps(
    {
        "title": "Two days in Kuching",
        "days": [
            {
                "day": 1,
                "activities": [
                    {
                        "time": "09:00",
                        "name": "Semenggoh Wildlife Centre",
                        "description": "Orangutan feeding time.",
                    }
                ],
            }
        ],
    }
)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(ai_service, "INITIAL_BACKOFF", 0)


@pytest.fixture
def service(ai_client):
    return AiService(ai_client, "test-model")


def connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(
        request=httpx.Request("POST", "https://api.example/v1/chat/completions")
    )


def bad_request_error() -> openai.BadRequestError:
    request = httpx.Request("POST", "https://api.example/v1/chat/completions")
    return openai.BadRequestError(
        "bad request", response=httpx.Response(400, request=request), body=None
    )


# ============================================================================
# COMPLETIONS
# ============================================================================

class TestDescriptions:

    async def test_returns_stripped_text(self, service, ai_client):
        ai_client.chat.completions.create.return_value = make_completion("  Lush jungle.  ")
        text = await service.generate_cluster_description("Bako", "nature", "Kuching")

        assert text == "Lush jungle."
        kwargs = ai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert "Bako" in kwargs["messages"][0]["content"]

    async def test_unconfigured_service(self):
        service = AiService(None, "test-model")
        assert not service.available
        with pytest.raises(UpstreamServiceFailure):
            await service.generate_cluster_description("Bako")

    async def test_transient_errors_are_retried(self, service, ai_client):
        ai_client.chat.completions.create.side_effect = [
            connection_error(),
            make_completion("Recovered"),
        ]
        assert await service.generate_cluster_description("Bako") == "Recovered"
        assert ai_client.chat.completions.create.await_count == 2

    async def test_client_errors_fail_fast(self, service, ai_client):
        ai_client.chat.completions.create.side_effect = bad_request_error()
        with pytest.raises(UpstreamServiceFailure) as exc_info:
            await service.generate_cluster_description("Bako")
        assert exc_info.value.action == "Generating description"
        assert ai_client.chat.completions.create.await_count == 1

    async def test_exhausted_retries(self, service, ai_client):
        ai_client.chat.completions.create.side_effect = connection_error()
        with pytest.raises(UpstreamServiceFailure):
            await service.generate_cluster_description("Bako")
        assert ai_client.chat.completions.create.await_count == ai_service.MAX_RETRIES

    async def test_empty_completion(self, service, ai_client):
        ai_client.chat.completions.create.return_value = make_completion("   ")
        with pytest.raises(UpstreamServiceFailure):
            await service.generate_cluster_description("Bako")


class TestItinerary:

    async def test_valid_plan(self, service, ai_client):
        ai_client.chat.completions.create.return_value = make_completion(ITINERARY_JSON)
        plan = await service.suggest_itinerary(
            "Wildlife weekend",
            clusters=[{"name": "Semenggoh", "category": "nature"}],
            events=[{"title": "Rainforest World Music Festival"}],
        )

        assert plan.title == "Two days in Kuching"
        assert plan.days[0].activities[0].time == "09:00"
        kwargs = ai_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "Rainforest World Music Festival" in kwargs["messages"][0]["content"]

    async def test_malformed_plan(self, service, ai_client):
        ai_client.chat.completions.create.return_value = make_completion("not json")
        with pytest.raises(UpstreamServiceFailure):
            await service.suggest_itinerary("Anything", [], [])

    async def test_blank_prompt(self, service, ai_client):
        with pytest.raises(ValidationFailure):
            await service.suggest_itinerary("  ", [], [])
        ai_client.chat.completions.create.assert_not_called()


# ============================================================================
# CACHED INSIGHTS
# ============================================================================

class TestInsights:

    async def test_insight_is_cached_until_data_changes(self, db, service, ai_client):
        ai_client.chat.completions.create.return_value = make_completion("Visitors grew.")
        builder = MagicMock(return_value="figures")
        stamp = datetime(2025, 6, 1, tzinfo=timezone.utc)

        insight, cached = await service.get_insight(db, "visitors", "2025", stamp, builder)
        await db.commit()
        assert (insight.content, cached) == ("Visitors grew.", False)

        again, cached = await service.get_insight(db, "visitors", "2025", stamp, builder)
        assert cached is True
        assert again.content == "Visitors grew."
        assert builder.call_count == 1
        assert ai_client.chat.completions.create.await_count == 1

        ai_client.chat.completions.create.return_value = make_completion("Visitors fell.")
        newer = stamp + timedelta(days=1)
        fresh, cached = await service.get_insight(db, "visitors", "2025", newer, builder)
        assert (fresh.content, cached) == ("Visitors fell.", False)
        assert fresh.id == insight.id

    async def test_async_prompt_builder(self, db, service):
        builder = AsyncMock(return_value="figures")
        stamp = datetime(2025, 1, 1, tzinfo=timezone.utc)
        insight, cached = await service.get_insight(db, "events", "2025", stamp, builder)
        assert not cached
        builder.assert_awaited_once()
        assert insight.filter_key == "2025"
