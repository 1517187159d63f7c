"""
Steward Structured Logging

Configures the ``steward`` logger namespace using stdlib logging with
structured context fields (tenant, actor, tool, provider).

Usage:
    import logging

    logger = logging.getLogger(__name__)
    logger.info("Digest stored", extra={"tenant_id": "t-1", "digest_bytes": 2811})

For production, configure with JSON output:
    from steward.logging import configure_logging
    configure_logging(json_output=True, level="INFO")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Extra attributes promoted into the structured record when present
CONTEXT_FIELDS = (
    "tenant_id",
    "actor_id",
    "tool_name",
    "provider",
    "model_name",
    "action",
    "duration_ms",
    "digest_bytes",
    "error_code",
)


class StewardFormatter(logging.Formatter):
    """Structured log formatter.

    Outputs either human-readable or JSON lines depending on configuration.
    """

    def __init__(self, json_output: bool = False):
        super().__init__()
        self._json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self._json_output:
            return json.dumps(log_data, default=str)

        extra_keys = {
            k: v for k, v in log_data.items()
            if k not in ("timestamp", "level", "logger", "message", "exception")
        }
        extra_str = ""
        if extra_keys:
            extra_str = " | " + " ".join(f"{k}={v}" for k, v in extra_keys.items())

        line = f"[{log_data['timestamp']}] {record.levelname:8s} {record.name}: {record.getMessage()}{extra_str}"
        if "exception" in log_data:
            line = f"{line}\n{log_data['exception']}"
        return line


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure the ``steward`` logger namespace.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, emit one JSON object per line.
    """
    root_logger = logging.getLogger("steward")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StewardFormatter(json_output=json_output))
    root_logger.addHandler(handler)


def get_logger(name: str = "steward") -> logging.Logger:
    """Get a logger inside the ``steward`` namespace."""
    return logging.getLogger(name)
