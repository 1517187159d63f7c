"""
Steward Tool Registry

Process-wide catalog of tool specs. Built once at startup, then frozen
and read-only. Each request gets a fresh ToolSet: every permitted tool
bound to a new TenantContext, so no state is shared across requests.

``get_tools_for_role`` and ``is_tool_allowed`` use the same rank check
and can never disagree.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from pydantic import ValidationError

from steward.core.models import TenantContext
from steward.exceptions import ToolError, ToolNotPermittedError, ToolValidationError
from steward.tools.models import ToolResult, ToolSpec
from steward.tools.permissions import Role, has_permission

logger = logging.getLogger(__name__)


class BoundTool:
    """A tool spec bound to one request's tenant context."""

    def __init__(self, spec: ToolSpec, context: TenantContext):
        self.spec = spec
        self.context = context

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, raw_input: dict[str, Any] | None) -> ToolResult:
        """Validate input and run the handler. Never raises."""
        try:
            params = self.spec.input_model.model_validate(raw_input or {})
        except ValidationError as e:
            err = ToolValidationError(self.name, _summarize_validation(e))
            return _error_result(self.name, err)

        try:
            output = await self.spec.handler(self.context, params)
        except ToolError as e:
            return _error_result(self.name, e)
        except Exception as e:
            logger.warning(
                "Tool handler raised %s",
                type(e).__name__,
                extra={"tenant_id": self.context.tenant_id, "tool_name": self.name},
            )
            return ToolResult(
                tool_name=self.name,
                success=False,
                error_code="tool_execution_failed",
                error_message=f"Tool '{self.name}' failed: {type(e).__name__}",
            )

        return ToolResult(tool_name=self.name, success=True, output=output)


class ToolSet:
    """The tools one caller may use in one request."""

    def __init__(self, tools: list[BoundTool]):
        self._tools = {t.name: t for t in tools}

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> BoundTool | None:
        return self._tools.get(name)

    def schemas(self) -> list[dict[str, Any]]:
        return [t.spec.schema_dict() for t in self._tools.values()]

    async def execute(self, name: str, raw_input: dict[str, Any] | None) -> ToolResult:
        """Execute a tool by name. Names outside this set are rejected unexecuted."""
        tool = self._tools.get(name)
        if tool is None:
            return _error_result(
                name, ToolNotPermittedError(name, "not available to this caller")
            )
        return await tool.execute(raw_input)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[BoundTool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


class ToolRegistry:
    """Central registry for all tools with permission tiers."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._frozen = False

    def register(self, spec: ToolSpec) -> None:
        """Register a tool.

        Raises ValueError on duplicate names or after ``freeze()``.
        """
        if self._frozen:
            raise ValueError("Tool registry is frozen")
        if spec.name in self._tools:
            raise ValueError(f"Tool '{spec.name}' is already registered")
        self._tools[spec.name] = spec

    def freeze(self) -> ToolRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def get_all(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def is_tool_allowed(self, tool_name: str, role: str | Role | None) -> bool:
        """Pure check. Unknown tools are never allowed."""
        spec = self._tools.get(tool_name)
        if spec is None:
            return False
        return has_permission(role, spec.required_permission)

    def get_tools_for_role(
        self, role: str | Role | None, tenant_id: str, actor_id: str
    ) -> ToolSet:
        """Bind every permitted tool to a fresh context for this caller."""
        role_value = role.value if isinstance(role, Role) else role
        context = TenantContext(tenant_id=tenant_id, actor_id=actor_id, role=role_value)
        return ToolSet([
            BoundTool(spec, context)
            for spec in self._tools.values()
            if self.is_tool_allowed(spec.name, role)
        ])

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools


def _error_result(tool_name: str, err: ToolError) -> ToolResult:
    return ToolResult(
        tool_name=tool_name,
        success=False,
        error_code=err.code,
        error_message=err.message,
    )


def _summarize_validation(e: ValidationError) -> str:
    parts = []
    for item in e.errors()[:3]:
        loc = ".".join(str(p) for p in item.get("loc", ())) or "input"
        parts.append(f"{loc}: {item.get('msg', 'invalid')}")
    return "invalid input (" + "; ".join(parts) + ")"
