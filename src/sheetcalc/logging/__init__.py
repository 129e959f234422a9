"""Structured event logging for sheetcalc.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from sheetcalc.logging.events import (
    CalcEvent,
    EventLevel,
    EventType,
    configure_from,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    redact_context,
    redact_url,
    set_log_dir,
)
from sheetcalc.logging.sink import EventSink

__all__ = [
    "CalcEvent",
    "EventLevel",
    "EventSink",
    "EventType",
    "configure_from",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "redact_context",
    "redact_url",
    "set_log_dir",
]
