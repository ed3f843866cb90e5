"""
AI copywriting and trip planning for the Tourism Hub.

The completion service is only ever used for descriptive text and
itinerary suggestions; no authorization or state-transition decision
depends on its output.  Every failure (missing credentials, API error,
malformed JSON) surfaces as UpstreamServiceFailure.
"""

import asyncio
import json
import logging
from datetime import datetime
from functools import wraps
from typing import Awaitable, Callable, Optional, Union

import openai
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import UpstreamServiceFailure, ValidationFailure
from tourism_hub.models.ai import SuggestedItinerary
from tourism_hub.models.db.analytics import AiInsight
from tourism_hub.models.db.base import as_utc, utcnow

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
INITIAL_BACKOFF = 1.0  # seconds
BACKOFF_MULTIPLIER = 2.0
REQUEST_TIMEOUT = 60  # seconds

MAX_CONTEXT_ITEMS = 40


def with_retry(max_retries: int = MAX_RETRIES):
    """
    Decorator for retrying async completion calls with exponential backoff.

    Rate limits, timeouts, connection errors and 5xx responses are retried;
    4xx responses fail immediately.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except (
                    openai.RateLimitError,
                    openai.APITimeoutError,
                    openai.APIConnectionError,
                ) as e:
                    last_exception = e
                except openai.APIStatusError as e:
                    if 400 <= e.status_code < 500:
                        logger.error(
                            "API error on %s: %s - %s", func.__name__, e.status_code, e.message
                        )
                        raise
                    last_exception = e
                if attempt + 1 < max_retries:
                    wait_time = INITIAL_BACKOFF * (BACKOFF_MULTIPLIER ** attempt)
                    logger.warning(
                        "%s on %s, retrying in %ss (attempt %d/%d)",
                        type(last_exception).__name__,
                        func.__name__,
                        wait_time,
                        attempt + 1,
                        max_retries,
                    )
                    await asyncio.sleep(wait_time)

            logger.error("All %d retries exhausted for %s", max_retries, func.__name__)
            raise last_exception

        return wrapper
    return decorator


# ============================================================================
# Prompts
# ============================================================================

DESCRIPTION_PROMPT = """You write listings for the Sarawak tourism portal.

Write an inviting description of 80-120 words for this attraction. Plain
prose, no headings, no bullet points, no invented facts such as prices or
opening hours.

Name: {name}
Category: {category}
Location: {location}
"""

ITINERARY_PROMPT = """You are a Sarawak travel planner.

Plan a trip for this request: {prompt}

Use only places and events from these lists where possible.

PLACES:
{clusters}

EVENTS:
{events}

Respond with JSON only, in exactly this shape:
{{"title": "...", "days": [{{"day": 1, "activities": [{{"time": "09:00", "name": "...", "description": "..."}}]}}]}}
"""

INSIGHT_SYSTEM_PROMPT = (
    "You are a tourism data analyst. Summarise the figures you are given in "
    "three short paragraphs for tourism board staff. Do not invent numbers."
)

PromptBuilder = Callable[[], Union[str, Awaitable[str]]]


def _format_items(items: list[dict], fields: tuple[str, ...]) -> str:
    lines = []
    for item in items[:MAX_CONTEXT_ITEMS]:
        parts = [str(item.get(f)) for f in fields if item.get(f)]
        if parts:
            lines.append("- " + " | ".join(parts))
    return "\n".join(lines) or "- (none)"


class AiService:
    """Thin async wrapper around an OpenAI-compatible chat completion client."""

    def __init__(self, client: Optional[openai.AsyncOpenAI], model: str):
        self.client = client
        self.model = model

    @property
    def available(self) -> bool:
        return self.client is not None

    def _require_client(self, action: str) -> openai.AsyncOpenAI:
        if self.client is None:
            raise UpstreamServiceFailure("AI service is not configured", action=action)
        return self.client

    @with_retry()
    async def _complete(self, messages: list[dict], json_mode: bool, max_tokens: int):
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            timeout=REQUEST_TIMEOUT,
            **kwargs,
        )

    async def _chat(
        self,
        action: str,
        messages: list[dict],
        json_mode: bool = False,
        max_tokens: int = 800,
    ) -> str:
        self._require_client(action)
        try:
            response = await self._complete(messages, json_mode, max_tokens)
        except Exception as exc:
            logger.error("Completion failed during %s: %s", action, exc)
            raise UpstreamServiceFailure(
                "The AI service is unavailable, please try again", action=action
            ) from exc
        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise UpstreamServiceFailure("The AI service returned no text", action=action)
        return content.strip()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def generate_cluster_description(
        self, name: str, category: Optional[str] = None, location: Optional[str] = None
    ) -> str:
        prompt = DESCRIPTION_PROMPT.format(
            name=name, category=category or "General", location=location or "Sarawak"
        )
        return await self._chat(
            "Generating description",
            [{"role": "user", "content": prompt}],
            max_tokens=400,
        )

    async def suggest_itinerary(
        self, prompt: str, clusters: list[dict], events: list[dict]
    ) -> SuggestedItinerary:
        """Ask for a schema-constrained day-by-day plan and validate it."""
        action = "Planning itinerary"
        if not prompt or not prompt.strip():
            raise ValidationFailure("Describe the trip you want", action=action)
        content = await self._chat(
            action,
            [
                {
                    "role": "user",
                    "content": ITINERARY_PROMPT.format(
                        prompt=prompt.strip(),
                        clusters=_format_items(clusters, ("name", "category", "location")),
                        events=_format_items(events, ("title", "start_date", "location")),
                    ),
                }
            ],
            json_mode=True,
            max_tokens=2000,
        )
        try:
            return SuggestedItinerary.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.error("Unparseable itinerary from completion service: %s", exc)
            raise UpstreamServiceFailure(
                "The AI service returned an invalid itinerary", action=action
            ) from exc

    async def get_insight(
        self,
        db: AsyncSession,
        view_name: str,
        filter_key: str,
        data_last_updated_at: datetime,
        builder: PromptBuilder,
    ) -> tuple[AiInsight, bool]:
        """Return ``(insight, cached)`` for a dashboard view.

        The cached row is reused unless its ``data_last_updated_at`` is
        older than the supplied one; *builder* is only called on a miss.
        """
        action = "Generating insight"
        data_last_updated_at = as_utc(data_last_updated_at)
        result = await db.execute(
            select(AiInsight).where(
                AiInsight.view_name == view_name, AiInsight.filter_key == filter_key
            )
        )
        insight = result.scalar_one_or_none()
        if insight is not None and as_utc(insight.data_last_updated_at) >= data_last_updated_at:
            return insight, True

        prompt = builder()
        if asyncio.iscoroutine(prompt):
            prompt = await prompt
        content = await self._chat(
            action,
            [
                {"role": "system", "content": INSIGHT_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )

        if insight is None:
            insight = AiInsight(
                view_name=view_name,
                filter_key=filter_key,
                content=content,
                data_last_updated_at=data_last_updated_at,
            )
            db.add(insight)
        else:
            insight.content = content
            insight.data_last_updated_at = data_last_updated_at
            insight.updated_at = utcnow()
        await db.flush()
        logger.info("Insight regenerated for %s/%s", view_name, filter_key)
        return insight, False
