"""OpenTelemetry metrics for Steward.

Counters and histograms for model invocations, tool calls and digest
sizes. Without an SDK meter provider installed these are no-ops.
"""

from __future__ import annotations

from opentelemetry import metrics

_instruments: dict | None = None


def _ensure_instruments() -> dict:
    """Lazily create the meter and instruments."""
    global _instruments

    if _instruments is not None:
        return _instruments

    meter = metrics.get_meter("steward")
    _instruments = {
        "invocations": meter.create_counter(
            "steward.model_invocations.total",
            description="Total model invocations",
            unit="1",
        ),
        "tool_calls": meter.create_counter(
            "steward.tool_calls.total",
            description="Total tool call executions",
            unit="1",
        ),
        "latency": meter.create_histogram(
            "steward.model.latency_ms",
            description="Model invocation latency in milliseconds",
            unit="ms",
        ),
        "digest_bytes": meter.create_histogram(
            "steward.digest.bytes",
            description="Serialized digest size in bytes",
            unit="By",
        ),
    }
    return _instruments


def record_model_invocation(*, provider: str, success: bool, latency_ms: float, is_system_fallback: bool) -> None:
    """Record one model call and its latency."""
    inst = _ensure_instruments()
    attrs = {
        "steward.provider": provider,
        "steward.success": str(success),
        "steward.system_fallback": str(is_system_fallback),
    }
    inst["invocations"].add(1, attrs)
    inst["latency"].record(latency_ms, {"steward.provider": provider})


def record_tool_call(*, tool_name: str, success: bool, error_code: str | None = None) -> None:
    """Record a tool call execution."""
    _ensure_instruments()["tool_calls"].add(
        1,
        {
            "steward.tool_name": tool_name,
            "steward.success": str(success),
            "steward.error_code": error_code or "",
        },
    )


def record_digest_size(*, size_bytes: int, over_soft_target: bool) -> None:
    """Record the serialized size of a freshly built digest."""
    _ensure_instruments()["digest_bytes"].record(
        size_bytes, {"steward.over_soft_target": str(over_soft_target)}
    )
