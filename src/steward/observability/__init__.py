"""Steward Observability: OpenTelemetry tracing and metrics.

Without an SDK provider configured by the host process, all tracing and
metrics calls are no-ops.
"""

from steward.observability.metrics import (
    record_digest_size,
    record_model_invocation,
    record_tool_call,
)
from steward.observability.tracing import get_tracer

__all__ = [
    "get_tracer",
    "record_digest_size",
    "record_model_invocation",
    "record_tool_call",
]
