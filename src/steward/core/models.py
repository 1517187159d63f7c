"""
Steward Core Data Models

Shared types used across the orchestration core. This module must have
zero internal dependencies beyond pydantic.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


# ─── Enums ───────────────────────────────────────────────────

class ProviderKind(str, Enum):
    """Supported language-model provider families."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GROQ = "groq"


DEFAULT_MODELS: dict[str, str] = {
    ProviderKind.OPENAI.value: "gpt-4o",
    ProviderKind.ANTHROPIC.value: "claude-sonnet-4-20250514",
    ProviderKind.GROQ.value: "llama-3.3-70b-versatile",
}


class AuditAction(str, Enum):
    """Kinds of audited actions."""
    INVOKE = "invoke"
    TOOL_CALL = "tool_call"
    GENERATE_REPLY = "generate_reply"


# ─── Provider Configuration ─────────────────────────────────

class ProviderConfig(BaseModel):
    """A usable provider credential for one tenant.

    ``provider`` is kept as a plain string: records written by older
    versions may name a family this build does not know, and handle
    construction degrades instead of failing on them.
    """
    model_config = ConfigDict(frozen=True)

    provider: str
    model_name: str
    api_key: SecretStr
    is_system_fallback: bool = False


# ─── Tenant Context ──────────────────────────────────────────

class TenantContext(BaseModel):
    """Identity a bound tool executes under. Tools never see other tenant ids."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    actor_id: str
    role: str | None = None


# ─── Audit ───────────────────────────────────────────────────

class AuditEntry(BaseModel):
    """An append-only audit record. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    actor_id: str
    action: AuditAction
    tool_name: str | None = None
    provider: str | None = None
    model_name: str | None = None
    tokens_in: int | None = None
    tokens_out: int | None = None
    latency_ms: int | None = None
    success: bool = True
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ─── Agent Request / Response ───────────────────────────────

class ChatMessage(BaseModel):
    role: str
    content: str


class AgentRequest(BaseModel):
    """Inbound chat turn from the caller surface."""
    tenant_id: str
    actor_id: str
    actor_role: str | None = None
    message: str
    history: list[ChatMessage] = Field(default_factory=list)


class ToolCallRecord(BaseModel):
    """Outcome of one tool call executed during a turn."""
    tool_name: str
    tool_use_id: str = ""
    success: bool
    output: dict[str, Any] = Field(default_factory=dict)
    error_code: str | None = None


class AgentResponse(BaseModel):
    """Result of one agent turn.

    ``is_system_fallback`` tells the caller the turn ran on the system
    credential rather than the tenant's own key.
    """
    text: str = ""
    tool_calls_executed: list[ToolCallRecord] = Field(default_factory=list)
    provider: str | None = None
    model_name: str | None = None
    is_system_fallback: bool = False
    success: bool = True
    error_code: str | None = None
    error_message: str | None = None


class ReplyDraft(BaseModel):
    """Suggested reply text for a live conversation."""
    text: str
    confidence: str
    provider: str
    model_name: str
    is_system_fallback: bool = False
