"""pydantic-ai agent factory for the pipeline's language-model calls."""

from __future__ import annotations

from typing import Any

import structlog
from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from .config import AISettings

logger = structlog.get_logger()


def create_model(settings: AISettings) -> Model | None:
    """Return the configured chat model, or ``None`` when no API key is set."""
    if not settings.enabled:
        logger.info("ai_disabled", reason="missing_api_key")
        return None

    assert settings.api_key is not None
    provider = OpenAIProvider(
        base_url=settings.base_url,
        api_key=settings.api_key.get_secret_value(),
    )
    return OpenAIChatModel(settings.model, provider=provider)


def build_agent(
    model: Model | None,
    settings: AISettings,
    *,
    output_type: Any,
    system_prompt: str,
    temperature: float = 0.2,
) -> Agent[None, Any] | None:
    """Create an agent bound to *model*; ``None`` propagates a disabled model."""
    if model is None:
        return None
    return Agent(
        model,
        output_type=output_type,
        system_prompt=system_prompt,
        model_settings={"temperature": temperature, "timeout": settings.timeout_seconds},
    )
