"""
Steward OpenAI Provider

Wraps the OpenAI chat completions API behind the unified LLMProvider
interface. Also serves OpenAI-compatible endpoints (Groq) via base_url.
"""

from __future__ import annotations

import json
from typing import Any

from openai import AsyncOpenAI

from steward.core.models import ProviderConfig, ProviderKind
from steward.providers.base import ContentBlock, LLMProvider, LLMResponse


class OpenAIProvider(LLMProvider):
    """OpenAI and OpenAI-compatible handle."""

    family = ProviderKind.OPENAI.value
    DEFAULT_MODEL = "gpt-4o"
    DEFAULT_BASE_URL: str | None = None

    def __init__(
        self,
        config: ProviderConfig,
        client: AsyncOpenAI | None = None,
        base_url: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(config, **kwargs)
        self._base_url = base_url or self.DEFAULT_BASE_URL
        self._client = client or self._create_client()

    @property
    def base_url(self) -> str | None:
        return self._base_url

    def _create_client(self) -> AsyncOpenAI:
        kwargs: dict[str, Any] = {
            "api_key": self._config.api_key.get_secret_value(),
            "timeout": self._timeout_seconds,
            "max_retries": 0,
        }
        if self._base_url:
            kwargs["base_url"] = self._base_url
        return AsyncOpenAI(**kwargs)

    async def _create_message_impl(
        self,
        messages: list[dict[str, Any]],
        *,
        max_tokens: int = 1024,
        system: str | None = None,
        tools: list[dict] | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        oai_messages: list[dict[str, Any]] = []
        if system:
            oai_messages.append({"role": "system", "content": system})
        for msg in messages:
            oai_messages.extend(self._convert_message(msg))

        kwargs: dict[str, Any] = {
            "model": self._config.model_name,
            "max_tokens": max_tokens,
            "messages": oai_messages,
        }
        if tools:
            kwargs["tools"] = self._convert_tools(tools)
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = await self._client.chat.completions.create(**kwargs)
        return self._to_response(response)

    @staticmethod
    def _convert_message(msg: dict[str, Any]) -> list[dict[str, Any]]:
        """Convert one Anthropic-style message into OpenAI messages.

        A user message carrying several tool_result blocks becomes several
        ``tool`` messages, one per call.
        """
        content = msg.get("content", "")
        role = msg.get("role", "user")

        if not isinstance(content, list):
            return [{"role": role, "content": str(content)}]

        if role == "user":
            results = [c for c in content if c.get("type") == "tool_result"]
            if results:
                return [
                    {
                        "role": "tool",
                        "tool_call_id": r.get("tool_use_id", ""),
                        "content": str(r.get("content", "")),
                    }
                    for r in results
                ]

        text_parts = [c.get("text", "") for c in content if c.get("type") == "text"]
        tool_calls = [
            {
                "id": c.get("id", ""),
                "type": "function",
                "function": {
                    "name": c.get("name", ""),
                    "arguments": json.dumps(c.get("input", {})),
                },
            }
            for c in content
            if c.get("type") == "tool_use"
        ]

        converted: dict[str, Any] = {
            "role": role,
            "content": "\n".join(text_parts) if text_parts else None,
        }
        if tool_calls:
            converted["tool_calls"] = tool_calls
        return [converted]

    @staticmethod
    def _convert_tools(tools: list[dict]) -> list[dict]:
        """Convert Anthropic tool schemas to OpenAI function definitions."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("input_schema", {}),
                },
            }
            for tool in tools
        ]

    @staticmethod
    def _to_response(response: Any) -> LLMResponse:
        """Convert an OpenAI API response to LLMResponse."""
        choice = response.choices[0] if response.choices else None
        if not choice:
            return LLMResponse()

        blocks: list[ContentBlock] = []
        msg = choice.message

        if msg.content:
            blocks.append(ContentBlock(type="text", text=msg.content))

        for tc in msg.tool_calls or []:
            try:
                arguments = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError:
                # Surface as-is; tool input validation will reject it
                arguments = {"_raw": tc.function.arguments}
            blocks.append(ContentBlock(
                type="tool_use",
                tool_name=tc.function.name,
                tool_input=arguments if isinstance(arguments, dict) else {"_raw": arguments},
                tool_use_id=tc.id,
            ))

        stop_reason_map = {
            "stop": "end_turn",
            "tool_calls": "tool_use",
            "length": "max_tokens",
            "content_filter": "end_turn",
        }
        stop_reason = stop_reason_map.get(choice.finish_reason or "stop", "end_turn")

        usage = response.usage
        return LLMResponse(
            content=blocks,
            stop_reason=stop_reason,
            model=response.model or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


class GroqProvider(OpenAIProvider):
    """Groq handle over its OpenAI-compatible endpoint."""

    family = ProviderKind.GROQ.value
    DEFAULT_MODEL = "llama-3.3-70b-versatile"
    DEFAULT_BASE_URL = "https://api.groq.com/openai/v1"
