"""
Steward Audit Logger

Append-only record of every model invocation, tool call and reply draft,
for usage monitoring and billing.

Fire-and-forget: ``log`` never raises and never blocks the caller. A
failed write is reported as a local warning and dropped, so auditing can
never break the request it describes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from pydantic import ValidationError

from steward.core.models import AuditAction, AuditEntry

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    async def insert_audit(self, entry: AuditEntry) -> None: ...


class AuditLogger:
    """Detached writer of AuditEntry records."""

    def __init__(self, sink: AuditSink):
        self._sink = sink
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def record(self, entry: AuditEntry) -> None:
        """Write one entry. Failures are logged and swallowed."""
        try:
            await self._sink.insert_audit(entry)
        except Exception as e:
            logger.warning(
                "Failed to write audit entry: %s",
                type(e).__name__,
                extra={
                    "tenant_id": entry.tenant_id,
                    "actor_id": entry.actor_id,
                    "action": entry.action.value,
                },
            )

    def log(self, entry: AuditEntry) -> None:
        """Schedule a write without waiting for it.

        Outside a running event loop the entry is written synchronously.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.record(entry))
            return
        task = loop.create_task(self.record(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for all scheduled writes (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ─── Convenience shapes ─────────────────────────────────

    def _log_fields(self, **fields: Any) -> None:
        try:
            entry = AuditEntry(**fields)
        except ValidationError as e:
            logger.warning(
                "Dropped malformed audit entry: %d field error(s)",
                e.error_count(),
                extra={
                    "tenant_id": fields.get("tenant_id"),
                    "action": getattr(fields.get("action"), "value", None),
                },
            )
            return
        self.log(entry)

    def log_invocation(
        self,
        tenant_id: str,
        actor_id: str,
        *,
        provider: str,
        model_name: str,
        tokens_in: int | None = None,
        tokens_out: int | None = None,
        latency_ms: int | None = None,
        success: bool = True,
        error_message: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._log_fields(
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=AuditAction.INVOKE,
            provider=provider,
            model_name=model_name,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            latency_ms=latency_ms,
            success=success,
            error_message=error_message,
            metadata=metadata or {},
        )

    def log_tool_call(
        self,
        tenant_id: str,
        actor_id: str,
        tool_name: str,
        *,
        success: bool,
        error_message: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._log_fields(
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=AuditAction.TOOL_CALL,
            tool_name=tool_name,
            success=success,
            error_message=error_message,
            metadata=metadata or {},
        )

    def log_reply_generation(
        self,
        tenant_id: str,
        actor_id: str,
        *,
        provider: str,
        model_name: str,
        tokens_in: int | None = None,
        tokens_out: int | None = None,
        latency_ms: int | None = None,
        success: bool = True,
        error_message: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._log_fields(
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=AuditAction.GENERATE_REPLY,
            provider=provider,
            model_name=model_name,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            latency_ms=latency_ms,
            success=success,
            error_message=error_message,
            metadata=metadata or {},
        )
