"""
Steward Claude Provider

Wraps the Anthropic SDK (anthropic.AsyncAnthropic) behind the unified
LLMProvider interface. Internal messages already use Anthropic's shape,
so no conversion is needed on the way in.
"""

from __future__ import annotations

from typing import Any

import anthropic

from steward.core.models import ProviderConfig, ProviderKind
from steward.providers.base import ContentBlock, LLMProvider, LLMResponse


class ClaudeProvider(LLMProvider):
    """Anthropic Claude handle bound to one tenant's key."""

    family = ProviderKind.ANTHROPIC.value
    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        config: ProviderConfig,
        client: anthropic.AsyncAnthropic | None = None,
        **kwargs: Any,
    ):
        super().__init__(config, **kwargs)
        # SDK-level retries are disabled; the base class owns retry policy
        self._client = client or anthropic.AsyncAnthropic(
            api_key=config.api_key.get_secret_value(),
            timeout=self._timeout_seconds,
            max_retries=0,
        )

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        return self._client

    async def _create_message_impl(
        self,
        messages: list[dict[str, Any]],
        *,
        max_tokens: int = 1024,
        system: str | None = None,
        tools: list[dict] | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": self._config.model_name,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = await self._client.messages.create(**kwargs)
        return self._to_response(response)

    @staticmethod
    def _to_response(response: Any) -> LLMResponse:
        """Convert an Anthropic API response to LLMResponse."""
        blocks: list[ContentBlock] = []
        for block in response.content:
            if block.type == "text":
                blocks.append(ContentBlock(type="text", text=block.text))
            elif block.type == "tool_use":
                blocks.append(ContentBlock(
                    type="tool_use",
                    tool_name=block.name,
                    tool_input=block.input,
                    tool_use_id=block.id,
                ))

        return LLMResponse(
            content=blocks,
            stop_reason=response.stop_reason or "end_turn",
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
