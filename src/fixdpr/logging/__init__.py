"""Structured run logging utilities."""

from .audit import AuditEvent, JsonlAuditLogger, summarize_warnings, utc_timestamp

__all__ = ["AuditEvent", "JsonlAuditLogger", "summarize_warnings", "utc_timestamp"]
