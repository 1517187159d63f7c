"""Steward audit trail: fire-and-forget records of model and tool usage."""

from steward.audit.logger import AuditLogger, AuditSink

__all__ = ["AuditLogger", "AuditSink"]
