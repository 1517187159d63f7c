"""Model handle factory: ProviderConfig → LLMProvider."""

from __future__ import annotations

import logging

from steward.core.models import DEFAULT_MODELS, ProviderConfig, ProviderKind
from steward.providers.base import LLMProvider
from steward.providers.claude import ClaudeProvider
from steward.providers.openai import GroqProvider, OpenAIProvider

logger = logging.getLogger(__name__)


def create_handle(config: ProviderConfig, *, timeout_seconds: float = 60.0) -> LLMProvider:
    """Build a model handle for a resolved provider config.

    An unrecognized provider family does not raise: it degrades to the
    OpenAI-compatible Groq handle with the Groq default model.
    """
    family = config.provider.lower()

    if family == ProviderKind.OPENAI.value:
        return OpenAIProvider(config, timeout_seconds=timeout_seconds)
    if family == ProviderKind.ANTHROPIC.value:
        return ClaudeProvider(config, timeout_seconds=timeout_seconds)
    if family == ProviderKind.GROQ.value:
        return GroqProvider(config, timeout_seconds=timeout_seconds)

    logger.warning(
        "Unknown provider family '%s', using OpenAI-compatible default",
        config.provider,
        extra={"provider": config.provider},
    )
    degraded = config.model_copy(update={"model_name": DEFAULT_MODELS[ProviderKind.GROQ.value]})
    return GroqProvider(degraded, timeout_seconds=timeout_seconds)
