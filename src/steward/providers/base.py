"""
Steward LLM Provider Base

Abstract interface for language-model handles. Every provider family is
wrapped behind this interface so the runtime can call any tenant's model
without knowing which vendor sits behind it.

Key design decisions:
- Async-first (all providers are async)
- Retry with exponential backoff built into the base class
- Tool use abstracted into a common (Anthropic-style) format
- Provider-agnostic response model (LLMResponse)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from steward.core.models import ProviderConfig
from steward.exceptions import ProviderError

logger = logging.getLogger(__name__)


class ContentBlock(BaseModel):
    """A single content block in an LLM response.

    Abstracts over provider-specific formats (Anthropic content blocks,
    OpenAI choices) into one structure.
    """
    type: str = "text"  # "text" or "tool_use"
    text: str = ""
    tool_name: str = ""
    tool_input: dict[str, Any] = Field(default_factory=dict)
    tool_use_id: str = ""


class LLMResponse(BaseModel):
    """Unified response from any LLM provider."""
    content: list[ContentBlock] = Field(default_factory=list)
    stop_reason: str = "end_turn"
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def text(self) -> str:
        """Concatenated text from all text blocks."""
        return "".join(b.text for b in self.content if b.type == "text")

    @property
    def tool_calls(self) -> list[ContentBlock]:
        """All tool_use blocks."""
        return [b for b in self.content if b.type == "tool_use"]

    @property
    def has_tool_use(self) -> bool:
        return self.stop_reason == "tool_use" or any(b.type == "tool_use" for b in self.content)


class LLMProvider(ABC):
    """Abstract base class for model handles.

    Subclasses implement ``_create_message_impl``. The base class wraps it
    with retry and exponential backoff. Deadlines are enforced by the
    caller (``asyncio.wait_for``), not here.
    """

    family: ClassVar[str] = ""

    def __init__(
        self,
        config: ProviderConfig,
        *,
        timeout_seconds: float = 60.0,
        max_retries: int = 2,
        retry_base_delay: float = 0.5,
    ):
        self._config = config
        self._timeout_seconds = timeout_seconds
        self._max_retries = max(1, max_retries)
        self._retry_base_delay = retry_base_delay

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @property
    def model(self) -> str:
        return self._config.model_name

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @abstractmethod
    async def _create_message_impl(
        self,
        messages: list[dict[str, Any]],
        *,
        max_tokens: int = 1024,
        system: str | None = None,
        tools: list[dict] | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Provider-specific message creation."""
        ...

    async def create_message(
        self,
        messages: list[dict[str, Any]],
        *,
        max_tokens: int = 1024,
        system: str | None = None,
        tools: list[dict] | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Create a message with retry and exponential backoff.

        Args:
            messages: Anthropic-style message dicts (role + content).
            max_tokens: Maximum tokens in the response.
            system: Optional system prompt.
            tools: Optional tool schemas ``{name, description, input_schema}``.
            temperature: Optional temperature override.

        Raises:
            ProviderError: after the last attempt fails.
        """
        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                return await self._create_message_impl(
                    messages,
                    max_tokens=max_tokens,
                    system=system,
                    tools=tools,
                    temperature=temperature,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    "Provider call failed (attempt %d/%d): %s",
                    attempt + 1,
                    self._max_retries,
                    type(e).__name__,
                    extra={"provider": self._config.provider, "model_name": self.model},
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_base_delay * (2 ** attempt))

        raise ProviderError(
            self._config.provider,
            f"failed after {self._max_retries} attempts: {type(last_error).__name__}",
        ) from last_error
