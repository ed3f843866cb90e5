"""OpenAI-compatible completion client configuration.

Uses Azure OpenAI when ``AZURE_OPENAI_ENDPOINT`` and ``AZURE_OPENAI_KEY``
are set, otherwise the public OpenAI API with ``OPENAI_API_KEY``.  The
client is created lazily so the API starts without AI credentials; AI
endpoints then fail with :class:`~tourism_hub.errors.UpstreamServiceFailure`.

Environment Variables:
- AZURE_OPENAI_ENDPOINT / AZURE_OPENAI_KEY: Azure OpenAI endpoint and key
- AZURE_OPENAI_API_VERSION: API version for chat completions (default: 2024-12-01-preview)
- OPENAI_API_KEY: public OpenAI key (used when Azure is not configured)
- AI_CHAT_MODEL: model or Azure deployment name (default: gpt-4.1-mini)
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from openai import AsyncAzureOpenAI, AsyncOpenAI

load_dotenv()

logger = logging.getLogger(__name__)


class CompletionConfig:
    """Completion client configuration container."""

    def __init__(self) -> None:
        self.azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
        self.azure_key = os.getenv("AZURE_OPENAI_KEY")
        self.api_version = os.getenv("AZURE_OPENAI_API_VERSION", "2024-12-01-preview")
        self.openai_key = os.getenv("OPENAI_API_KEY")
        self.chat_model = os.getenv("AI_CHAT_MODEL", "gpt-4.1-mini")

    @property
    def use_azure(self) -> bool:
        return bool(self.azure_endpoint and self.azure_key)

    @property
    def available(self) -> bool:
        return self.use_azure or bool(self.openai_key)

    def log_configuration(self) -> None:
        """Log the current configuration (without sensitive data)."""
        logger.info("Completion service configuration:")
        logger.info("  Provider: %s", "azure" if self.use_azure else "openai")
        logger.info("  Chat model: %s", self.chat_model)
        if self.use_azure:
            logger.info("  Endpoint: %s", self.azure_endpoint)


def create_completion_client(
    config: Optional[CompletionConfig] = None,
) -> Optional[AsyncOpenAI]:
    """Build the async client, or ``None`` when no credentials are set."""
    config = config or CompletionConfig()
    if not config.available:
        logger.warning("No OpenAI credentials configured -- AI features disabled")
        return None
    config.log_configuration()
    if config.use_azure:
        return AsyncAzureOpenAI(
            api_key=config.azure_key,
            api_version=config.api_version,
            azure_endpoint=config.azure_endpoint,
        )
    return AsyncOpenAI(api_key=config.openai_key)


def get_chat_model() -> str:
    return os.getenv("AI_CHAT_MODEL", "gpt-4.1-mini")


__all__ = [
    "CompletionConfig",
    "create_completion_client",
    "get_chat_model",
]
