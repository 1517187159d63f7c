"""
Steward Tool System

Role-gated tools the model may call on a tenant's behalf, in three trust
tiers: read (query-only), suggest (drafts, no mutation) and write
(mutates tenant state or queues an externally visible action).

Usage:
    from steward.tools import build_default_registry

    registry = build_default_registry(store, kpi_provider)
    tools = registry.get_tools_for_role("chatter", tenant_id, actor_id)
"""

from steward.digest.kpi import KPIProvider
from steward.storage.repository import TenantStore
from steward.tools.actions import build_action_tools
from steward.tools.models import ToolKind, ToolResult, ToolSpec
from steward.tools.permissions import PermissionTier, Role, has_permission, rank
from steward.tools.read import build_read_tools
from steward.tools.registry import BoundTool, ToolRegistry, ToolSet


def build_default_registry(store: TenantStore, kpi_provider: KPIProvider) -> ToolRegistry:
    """Register the full catalog and freeze the registry."""
    registry = ToolRegistry()
    for spec in build_read_tools(store, kpi_provider) + build_action_tools(store):
        registry.register(spec)
    return registry.freeze()


__all__ = [
    "BoundTool",
    "PermissionTier",
    "Role",
    "ToolKind",
    "ToolRegistry",
    "ToolResult",
    "ToolSet",
    "ToolSpec",
    "build_default_registry",
    "has_permission",
    "rank",
]
