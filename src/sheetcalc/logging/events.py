"""Unified event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
reported on stderr (rate-limited) and never propagate to the caller.
"""

from __future__ import annotations

import re
import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse, urlunparse

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Parsing and evaluation
    formula_parse_error = "formula_parse_error"
    unknown_function = "unknown_function"
    circular_reference = "circular_reference"

    # Web functions
    webservice_fetch = "webservice_fetch"
    webservice_failed = "webservice_failed"
    webservice_blocked = "webservice_blocked"

    # Recalculation lifecycle
    recalc_started = "recalc_started"
    recalc_completed = "recalc_completed"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

PARSE_FAILED = "parse_failed"
CIRCULAR_REFERENCE = "circular_reference"
UNKNOWN_FUNCTION = "unknown_function"
WEB_DISABLED = "web_disabled"
WEB_URL_TOO_LONG = "web_url_too_long"
WEB_BAD_SCHEME = "web_bad_scheme"
WEB_RESPONSE_TOO_LARGE = "web_response_too_large"
WEB_FETCH_FAILED = "web_fetch_failed"


# ---------------------------------------------------------------------------
# Secret redaction
# ---------------------------------------------------------------------------

_SENSITIVE_KEY_RE = re.compile(
    r"(password|passwd|secret|token|api_key|apikey|authorization|cookie"
    r"|set.cookie|session|bearer)",
    re.IGNORECASE,
)

_SAFE_HEADER_KEYS = frozenset({"user-agent", "accept", "content-type"})

_MAX_VALUE_LEN = 256


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with sensitive values redacted.

    Rules:
    - Keys matching sensitive patterns have their values replaced with
      ``"[REDACTED]"``.
    - String values that look like URLs have userinfo, query and fragment
      stripped.
    - String values longer than 256 chars are truncated.
    - A ``headers`` sub-dict keeps only safe header keys.
    """
    return _redact_dict(context)


def _redact_dict(d: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in d.items():
        if _SENSITIVE_KEY_RE.search(k):
            out[k] = "[REDACTED]"
        elif k.lower() == "headers" and isinstance(v, dict):
            out[k] = {
                hk: hv for hk, hv in v.items()
                if hk.lower() in _SAFE_HEADER_KEYS
            }
        elif isinstance(v, dict):
            out[k] = _redact_dict(v)
        elif isinstance(v, list):
            out[k] = [_redact_value(item) for item in v]
        else:
            out[k] = _redact_value(v)
    return out


def redact_url(url: str) -> str:
    """Strip userinfo, query and fragment from an http(s) URL."""
    try:
        parsed = urlparse(url)
        host = parsed.hostname or ""
        if parsed.port:
            host = f"{host}:{parsed.port}"
    except ValueError:
        return url[:_MAX_VALUE_LEN]
    if parsed.scheme not in ("http", "https"):
        return url[:_MAX_VALUE_LEN]
    clean = urlunparse((parsed.scheme, host, parsed.path, "", "", ""))
    return clean + "?[REDACTED]" if parsed.query else clean


def _redact_value(v: Any) -> Any:
    if isinstance(v, dict):
        return _redact_dict(v)
    if isinstance(v, str):
        if "://" in v and v.split("://", 1)[0].lower() in ("http", "https"):
            v = redact_url(v)
        if len(v) > _MAX_VALUE_LEN:
            return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Attribution invariants
# ---------------------------------------------------------------------------

_EVENT_REQUIRED_KEYS: dict[str, set[str]] = {
    EventType.formula_parse_error.value: {"formula"},
    EventType.unknown_function.value: {"function"},
    EventType.circular_reference.value: {"cell"},
    EventType.webservice_fetch.value: {"url"},
    EventType.webservice_failed.value: {"url"},
    EventType.webservice_blocked.value: set(),
    EventType.recalc_started.value: set(),
    EventType.recalc_completed.value: {"cells"},
}


def _validate_attribution(event: CalcEvent) -> CalcEvent:
    """Check required context keys; downgrade to warning if missing."""
    required = _EVENT_REQUIRED_KEYS.get(event.event_type.value, set())
    if not required:
        return event
    missing = required - set(event.context.keys())
    if missing:
        ctx = dict(event.context)
        ctx["_missing_attribution"] = sorted(missing)
        return event.model_copy(update={"level": EventLevel.warning, "context": ctx})
    return event


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class CalcEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Set by ``set_log_dir``; events are discarded while it is None.
_sink: Any = None  # EventSink | None


def set_log_dir(log_dir: Path | str | None, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
    """Configure the module-level event sink.

    This should be called early in a CLI command or host startup.  If it is
    never called (or called with None), ``emit()`` discards events.
    """
    global _sink
    from sheetcalc.logging.sink import EventSink

    if log_dir is None:
        _sink = None
        return
    _sink = EventSink(Path(log_dir), fsync=fsync, tail_bytes=tail_bytes)


def configure_from(config: Any) -> None:
    """Point the sink at ``config.log_dir`` using its logging options."""
    set_log_dir(config.log_dir, fsync=config.logging_fsync, tail_bytes=config.logging_tail_bytes)


def _get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[sheetcalc] {msg}", file=sys.stderr)
    except OSError:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: CalcEvent, *, run_id: str | None = None) -> None:
    """Write an event to the global log and optionally to a per-run log.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.

    Applies secret redaction and attribution validation before writing.
    """
    try:
        sink = _get_sink()
        if sink is None:
            return
        event = event.model_copy(update={"context": redact_context(event.context)})
        event = _validate_attribution(event)
        sink.write(event, run_id=run_id)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    run_id: str | None = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        CalcEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        ),
        run_id=run_id,
    )


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    run_id: str | None = None,
) -> None:
    """Convenience: emit a warning-level event."""
    emit(
        CalcEvent(
            level=EventLevel.warning,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        run_id=run_id,
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    run_id: str | None = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        CalcEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        run_id=run_id,
    )
