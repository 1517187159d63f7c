"""
Steward LLM Provider Layer

Model handles for the three supported provider families (OpenAI,
Anthropic, Groq) behind one interface, plus the per-tenant resolver that
decides which handle and credential a request uses.

Usage:
    from steward.providers import ProviderResolver

    resolved = await resolver.resolve(tenant_id)
    response = await resolved.handle.create_message(messages=[...])
"""

from steward.providers.base import ContentBlock, LLMProvider, LLMResponse
from steward.providers.claude import ClaudeProvider
from steward.providers.factory import create_handle
from steward.providers.openai import GroqProvider, OpenAIProvider
from steward.providers.resolver import ProviderResolver, ResolvedProvider
from steward.providers.validation import KeyValidation, validate_api_key

__all__ = [
    "ClaudeProvider",
    "ContentBlock",
    "GroqProvider",
    "KeyValidation",
    "LLMProvider",
    "LLMResponse",
    "OpenAIProvider",
    "ProviderResolver",
    "ResolvedProvider",
    "create_handle",
    "validate_api_key",
]
