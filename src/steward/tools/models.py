"""
Steward Tool Models

Tool specifications and the structured result every tool call produces.
A tool never raises past its boundary: invalid input, handler failures
and permission denials all come back as a ToolResult with an error code.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from steward.core.models import TenantContext
from steward.tools.permissions import PermissionTier

ToolHandler = Callable[[TenantContext, Any], Awaitable[dict[str, Any]]]


class ToolKind(str, Enum):
    """Trust tier by side-effect severity."""
    READ = "read"          # query-only
    SUGGEST = "suggest"    # drafts, no state mutation
    WRITE = "write"        # mutates tenant state or queues an external action


class ToolSpec(BaseModel):
    """A registered tool. Immutable once created.

    ``handler`` receives the bound TenantContext and the validated input
    model instance, and returns a small JSON-serializable dict.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str
    input_model: type[BaseModel]
    kind: ToolKind
    required_permission: PermissionTier
    handler: ToolHandler

    def schema_dict(self) -> dict[str, Any]:
        """Model-facing tool schema ``{name, description, input_schema}``."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_model.model_json_schema(),
        }


class ToolResult(BaseModel):
    """Outcome of one tool execution."""
    tool_name: str
    success: bool
    output: dict[str, Any] = Field(default_factory=dict)
    error_code: str | None = None
    error_message: str | None = None

    def to_content(self) -> str:
        """Compact JSON fed back to the model as the tool_result content."""
        if self.success:
            return json.dumps(self.output, default=str, separators=(",", ":"))
        return json.dumps(
            {"error": self.error_message or "tool failed", "code": self.error_code},
            separators=(",", ":"),
        )
