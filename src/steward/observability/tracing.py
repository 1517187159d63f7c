"""OpenTelemetry tracing for Steward.

Spans go to whatever tracer provider the host process installed; without
one, the OTel API hands back a no-op tracer with zero overhead.
"""

from __future__ import annotations

from opentelemetry import trace
from opentelemetry.trace import Tracer


def get_tracer() -> Tracer:
    """Get the Steward tracer."""
    return trace.get_tracer("steward")
