"""Tests for the Steward provider abstraction layer.

Covers:
- LLMResponse properties
- ClaudeProvider response conversion
- OpenAIProvider message, tool and response conversion
- Retry with backoff in the base class
- Provider factory
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from steward.core.models import ProviderConfig
from steward.exceptions import ProviderError
from steward.providers.base import ContentBlock, LLMResponse
from steward.providers.claude import ClaudeProvider
from steward.providers.factory import create_handle
from steward.providers.openai import GroqProvider, OpenAIProvider


def _config(provider: str = "openai", model: str = "gpt-4o") -> ProviderConfig:
    return ProviderConfig(provider=provider, model_name=model, api_key=SecretStr("sk-test"))


# ─── LLMResponse ──────────────────────────────────────────


class TestLLMResponse:
    def test_text_and_tool_calls(self):
        response = LLMResponse(content=[
            ContentBlock(type="text", text="Checking "),
            ContentBlock(type="tool_use", tool_name="get_tracking_links", tool_use_id="c1"),
            ContentBlock(type="text", text="now"),
        ])
        assert response.text == "Checking now"
        assert [c.tool_name for c in response.tool_calls] == ["get_tracking_links"]
        assert response.has_tool_use

    def test_empty(self):
        response = LLMResponse()
        assert response.text == ""
        assert response.tool_calls == []
        assert not response.has_tool_use


# ─── Claude ───────────────────────────────────────────────


class TestClaudeProvider:
    def test_to_response(self):
        raw = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Let me look."),
                SimpleNamespace(type="tool_use", name="search_vault", input={"entity_name": "Mia"}, id="tu_1"),
            ],
            stop_reason="tool_use",
            model="claude-sonnet-4-20250514",
            usage=SimpleNamespace(input_tokens=50, output_tokens=20),
        )
        response = ClaudeProvider._to_response(raw)
        assert response.text == "Let me look."
        assert response.tool_calls[0].tool_input == {"entity_name": "Mia"}
        assert response.tool_calls[0].tool_use_id == "tu_1"
        assert response.input_tokens == 50

    @pytest.mark.asyncio
    async def test_passes_system_tools_and_temperature(self):
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[], stop_reason="end_turn", model="m", usage=SimpleNamespace(input_tokens=1, output_tokens=1),
        ))
        provider = ClaudeProvider(_config("anthropic", "claude-haiku"), client=client)

        await provider.create_message(
            [{"role": "user", "content": "hi"}],
            system="be brief",
            tools=[{"name": "t", "description": "d", "input_schema": {}}],
            temperature=0.8,
            max_tokens=200,
        )

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-haiku"
        assert kwargs["system"] == "be brief"
        assert kwargs["temperature"] == 0.8
        assert kwargs["max_tokens"] == 200
        assert kwargs["tools"][0]["name"] == "t"


# ─── OpenAI ───────────────────────────────────────────────


class TestOpenAIConversion:
    def test_plain_message(self):
        assert OpenAIProvider._convert_message({"role": "user", "content": "hi"}) == [
            {"role": "user", "content": "hi"}
        ]

    def test_assistant_tool_use(self):
        converted = OpenAIProvider._convert_message({
            "role": "assistant",
            "content": [
                {"type": "text", "text": "checking"},
                {"type": "tool_use", "id": "c1", "name": "get_agency_kpis", "input": {"range": "7d"}},
            ],
        })
        assert len(converted) == 1
        msg = converted[0]
        assert msg["content"] == "checking"
        call = msg["tool_calls"][0]
        assert call["id"] == "c1"
        assert call["function"]["name"] == "get_agency_kpis"
        assert json.loads(call["function"]["arguments"]) == {"range": "7d"}

    def test_tool_results_split_per_call(self):
        converted = OpenAIProvider._convert_message({
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": "c1", "content": "{}", "is_error": False},
                {"type": "tool_result", "tool_use_id": "c2", "content": '{"error":"x"}', "is_error": True},
            ],
        })
        assert [m["role"] for m in converted] == ["tool", "tool"]
        assert [m["tool_call_id"] for m in converted] == ["c1", "c2"]

    def test_convert_tools(self):
        tools = OpenAIProvider._convert_tools([
            {"name": "search_vault", "description": "Search", "input_schema": {"type": "object"}}
        ])
        assert tools == [{
            "type": "function",
            "function": {"name": "search_vault", "description": "Search", "parameters": {"type": "object"}},
        }]

    def test_to_response_with_tool_calls(self):
        raw = SimpleNamespace(
            choices=[SimpleNamespace(
                message=SimpleNamespace(
                    content=None,
                    tool_calls=[SimpleNamespace(
                        id="call_9",
                        function=SimpleNamespace(name="get_tracking_links", arguments="{}"),
                    )],
                ),
                finish_reason="tool_calls",
            )],
            model="gpt-4o",
            usage=SimpleNamespace(prompt_tokens=30, completion_tokens=7),
        )
        response = OpenAIProvider._to_response(raw)
        assert response.stop_reason == "tool_use"
        assert response.tool_calls[0].tool_use_id == "call_9"
        assert response.output_tokens == 7

    def test_malformed_arguments_kept_raw(self):
        raw = SimpleNamespace(
            choices=[SimpleNamespace(
                message=SimpleNamespace(
                    content="",
                    tool_calls=[SimpleNamespace(id="c", function=SimpleNamespace(name="x", arguments="{oops"))],
                ),
                finish_reason="tool_calls",
            )],
            model="gpt-4o",
            usage=None,
        )
        response = OpenAIProvider._to_response(raw)
        assert response.tool_calls[0].tool_input == {"_raw": "{oops"}
        assert response.input_tokens == 0

    def test_no_choices(self):
        assert OpenAIProvider._to_response(SimpleNamespace(choices=[])).content == []

    @pytest.mark.asyncio
    async def test_system_prompt_prepended(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        provider = OpenAIProvider(_config(), client=client)

        await provider.create_message([{"role": "user", "content": "hi"}], system="rules")

        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "rules"}


# ─── Retry ────────────────────────────────────────────────


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=[
            RuntimeError("502"),
            SimpleNamespace(choices=[]),
        ])
        provider = OpenAIProvider(_config(), client=client, max_retries=2, retry_base_delay=0)
        await provider.create_message([{"role": "user", "content": "hi"}])
        assert client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_raises_provider_error(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("502"))
        provider = OpenAIProvider(_config(), client=client, max_retries=2, retry_base_delay=0)
        with pytest.raises(ProviderError) as exc:
            await provider.create_message([{"role": "user", "content": "hi"}])
        assert "2 attempts" in exc.value.message


# ─── Factory ──────────────────────────────────────────────


class TestFactory:
    @pytest.mark.parametrize(
        "provider, cls",
        [("openai", OpenAIProvider), ("anthropic", ClaudeProvider), ("groq", GroqProvider), ("GROQ", GroqProvider)],
    )
    def test_family(self, provider, cls):
        handle = create_handle(_config(provider, "some-model"))
        assert type(handle) is cls
        assert handle.model == "some-model"

    def test_groq_base_url(self):
        handle = create_handle(_config("groq", "llama"))
        assert handle.base_url == "https://api.groq.com/openai/v1"
