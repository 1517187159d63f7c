"""
Steward: Multi-Tenant AI Orchestration Core

Usage:
    from steward import AgentRuntime, AgentRequest, Settings

    runtime = AgentRuntime.from_settings(Settings.from_env())
    response = await runtime.handle(
        AgentRequest(
            tenant_id="agency-1",
            actor_id="user-7",
            actor_role="chatter",
            message="How did revenue move this week?",
        )
    )

    # Draft a reply to a live fan conversation:
    draft = await runtime.generate_reply(
        "agency-1", "user-7", "Mia", "whale", history=[...]
    )
"""

from steward.audit.logger import AuditLogger
from steward.cache import TTLCache
from steward.config import Settings
from steward.core.models import (
    AgentRequest,
    AgentResponse,
    AuditAction,
    AuditEntry,
    ChatMessage,
    ProviderConfig,
    ProviderKind,
    ReplyDraft,
    TenantContext,
    ToolCallRecord,
)
from steward.credentials.service import CredentialService
from steward.credentials.vault import CredentialVault, generate_key
from steward.digest.builder import DigestBuilder
from steward.exceptions import (
    ProviderTimeoutError,
    ProviderUnavailableError,
    StewardError,
    ToolError,
)
from steward.providers.resolver import ProviderResolver
from steward.runtime import AgentRuntime
from steward.storage.repository import TenantStore
from steward.tools import build_default_registry
from steward.tools.registry import ToolRegistry, ToolSet

__version__ = "0.3.0"

__all__ = [
    # Main API
    "AgentRuntime",
    "Settings",
    "__version__",
    # Models
    "AgentRequest",
    "AgentResponse",
    "AuditAction",
    "AuditEntry",
    "ChatMessage",
    "ProviderConfig",
    "ProviderKind",
    "ReplyDraft",
    "TenantContext",
    "ToolCallRecord",
    # Components
    "AuditLogger",
    "CredentialService",
    "CredentialVault",
    "DigestBuilder",
    "ProviderResolver",
    "TTLCache",
    "TenantStore",
    "ToolRegistry",
    "ToolSet",
    "build_default_registry",
    "generate_key",
    # Errors
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "StewardError",
    "ToolError",
]
