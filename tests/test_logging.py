"""Tests for the sheetcalc structured event logging system."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Iterator

import pytest

from sheetcalc.cell_graph import CellGraph
from sheetcalc.config import EvaluatorConfig
from sheetcalc.formulas import FormulaParseError, evaluate
from sheetcalc.logging import (
    CalcEvent,
    EventLevel,
    EventSink,
    EventType,
    configure_from,
    emit,
    emit_error,
    emit_info,
    redact_context,
    redact_url,
    set_log_dir,
)
from sheetcalc.logging import events as events_mod


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def log_dir(tmp_path: Path) -> Iterator[Path]:
    """Point the module-level sink at a temporary directory."""
    set_log_dir(tmp_path / "logs")
    yield tmp_path / "logs"
    set_log_dir(None)


@pytest.fixture
def sink(tmp_path: Path) -> EventSink:
    return EventSink(tmp_path / "logs")


def _event(message: str = "m", **kwargs) -> CalcEvent:
    kwargs.setdefault("level", EventLevel.info)
    kwargs.setdefault("event_type", EventType.recalc_started)
    return CalcEvent(message=message, **kwargs)


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# A) Event schema
# ---------------------------------------------------------------------------


class TestCalcEvent:
    def test_event_defaults(self):
        evt = _event("hello")
        assert evt.schema_version == 1
        assert evt.ts.endswith("Z")
        assert evt.level == "info"
        assert evt.event_type == "recalc_started"
        assert evt.context == {}
        assert evt.error_code is None

    def test_all_event_types_exist(self):
        assert {e.value for e in EventType} == {
            "formula_parse_error",
            "unknown_function",
            "circular_reference",
            "webservice_fetch",
            "webservice_failed",
            "webservice_blocked",
            "recalc_started",
            "recalc_completed",
        }

    def test_error_codes_are_strings(self):
        for name in (
            "PARSE_FAILED",
            "CIRCULAR_REFERENCE",
            "UNKNOWN_FUNCTION",
            "WEB_DISABLED",
            "WEB_URL_TOO_LONG",
            "WEB_BAD_SCHEME",
            "WEB_RESPONSE_TOO_LARGE",
            "WEB_FETCH_FAILED",
        ):
            value = getattr(events_mod, name)
            assert isinstance(value, str)
            assert value == name.lower()


# ---------------------------------------------------------------------------
# B) Filesystem NDJSON sink
# ---------------------------------------------------------------------------


class TestEventSink:
    def test_eager_directory_creation(self, tmp_path):
        EventSink(tmp_path / "fresh")
        assert (tmp_path / "fresh" / "runs").is_dir()

    def test_write_creates_global_log(self, sink):
        sink.write(_event("first"))
        lines = _lines(sink.logs_dir / "events.ndjson")
        assert len(lines) == 1
        assert lines[0]["message"] == "first"

    def test_json_sort_keys(self, sink):
        sink.write(_event())
        line = (sink.logs_dir / "events.ndjson").read_text().strip()
        keys = list(json.loads(line))
        assert keys == sorted(keys)

    def test_write_creates_per_run_log(self, sink):
        sink.write(_event("done"), run_id="run_001")
        assert len(_lines(sink.logs_dir / "runs" / "run_001.ndjson")) == 1
        assert sink.read_run_log("run_001")[0]["message"] == "done"

    def test_read_global_most_recent_first(self, sink):
        for i in range(5):
            sink.write(_event(f"event {i}"))
        events = sink.read_global()
        assert [e["message"] for e in events] == [f"event {i}" for i in range(4, -1, -1)]

    def test_read_global_filters(self, sink):
        sink.write(_event("info msg"))
        sink.write(_event("error msg", level=EventLevel.error, event_type=EventType.webservice_failed))
        assert [e["message"] for e in sink.read_global(level="error")] == ["error msg"]
        assert [e["message"] for e in sink.read_global(event_type="recalc_started")] == ["info msg"]

    def test_read_global_limit(self, sink):
        for i in range(10):
            sink.write(_event(f"event {i}"))
        events = sink.read_global(limit=3)
        assert [e["message"] for e in events] == ["event 9", "event 8", "event 7"]

    def test_read_missing_log_returns_empty(self, sink):
        assert sink.read_global() == []
        assert sink.read_run_log("never_ran") == []

    def test_skips_corrupt_lines(self, sink):
        sink.write(_event("good"))
        with open(sink.logs_dir / "events.ndjson", "a") as f:
            f.write("{not json\n")
        assert [e["message"] for e in sink.read_global()] == ["good"]

    def test_fsync_flag(self, tmp_path):
        sink = EventSink(tmp_path / "logs", fsync=True)
        sink.write(_event("fsync test"))
        assert sink.read_global()[0]["message"] == "fsync test"


class TestPathTraversal:
    def test_write_ignores_unsafe_run_id(self, sink):
        sink.write(_event(), run_id="../escape")
        assert not (sink.logs_dir.parent / "escape.ndjson").exists()
        assert list((sink.logs_dir / "runs").iterdir()) == []
        assert len(sink.read_global()) == 1

    @pytest.mark.parametrize("run_id", ["../x", "a/b", "", "a b"])
    def test_read_run_log_rejects_unsafe_ids(self, sink, run_id):
        assert sink.read_run_log(run_id) == []


class TestTailRead:
    def test_large_file_bounded(self, tmp_path):
        sink = EventSink(tmp_path / "logs", tail_bytes=400)
        for i in range(20):
            sink.write(_event(f"event {i:04d}"))
        events = sink.read_global()
        assert 0 < len(events) < 20
        assert events[0]["message"] == "event 0019"

    def test_limit_capped_at_2000(self, sink):
        for _ in range(2005):
            sink.write(_event())
        assert len(sink.read_global(limit=5000)) == 2000


class TestConcurrencySafety:
    def test_multi_threaded_appends(self, sink):
        num_threads = 4
        events_per_thread = 25
        barrier = threading.Barrier(num_threads)

        def writer(thread_id: int) -> None:
            barrier.wait()
            for i in range(events_per_thread):
                sink.write(_event(f"t{thread_id}-e{i}"))

        threads = [threading.Thread(target=writer, args=(tid,)) for tid in range(num_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(_lines(sink.logs_dir / "events.ndjson")) == num_threads * events_per_thread


# ---------------------------------------------------------------------------
# C) Module-level emit helpers
# ---------------------------------------------------------------------------


class TestEmitHelpers:
    def test_emit_without_log_dir_is_noop(self, tmp_path):
        set_log_dir(None)
        emit_info(EventType.recalc_started, "discarded")
        assert events_mod._get_sink() is None
        assert list(tmp_path.iterdir()) == []

    def test_set_log_dir_enables_logging(self, log_dir):
        emit_info(EventType.recalc_started, "hello from test")
        lines = _lines(log_dir / "events.ndjson")
        assert lines[0]["message"] == "hello from test"

    def test_emit_error_sets_error_code(self, log_dir):
        emit_error(
            EventType.webservice_failed,
            "boom",
            {"url": "https://example.com"},
            error_code="web_fetch_failed",
        )
        event = _lines(log_dir / "events.ndjson")[0]
        assert event["level"] == "error"
        assert event["error_code"] == "web_fetch_failed"

    def test_run_id_routes_to_run_log(self, log_dir):
        emit_info(EventType.recalc_started, "go", run_id="r1")
        assert len(_lines(log_dir / "runs" / "r1.ndjson")) == 1

    def test_emit_never_raises(self, log_dir, monkeypatch):
        def broken(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(events_mod._get_sink(), "write", broken)
        emit_info(EventType.recalc_started, "lost")

    def test_configure_from_config(self, tmp_path):
        config = EvaluatorConfig(log_dir=str(tmp_path / "cfg_logs"), logging_tail_bytes=4096)
        configure_from(config)
        try:
            sink = events_mod._get_sink()
            assert sink.logs_dir == tmp_path / "cfg_logs"
            assert sink._tail_bytes == 4096
        finally:
            set_log_dir(None)

    def test_configure_from_without_log_dir(self):
        configure_from(EvaluatorConfig())
        assert events_mod._get_sink() is None


# ---------------------------------------------------------------------------
# D) Secret redaction
# ---------------------------------------------------------------------------


class TestRedaction:
    def test_redact_sensitive_keys(self):
        ctx = {
            "cell": "Sheet1!A1",
            "password": "hunter2",
            "api_key": "sk-12345",
            "token": "abc",
            "authorization": "Bearer xyz",
        }
        redacted = redact_context(ctx)
        assert redacted["cell"] == "Sheet1!A1"
        for key in ("password", "api_key", "token", "authorization"):
            assert redacted[key] == "[REDACTED]"

    def test_redact_url(self):
        assert redact_url("https://user:pw@api.example.com:8443/q?key=1#frag") == (
            "https://api.example.com:8443/q?[REDACTED]"
        )
        assert redact_url("https://api.example.com/data") == "https://api.example.com/data"

    def test_non_http_urls_untouched(self):
        assert redact_url("ftp://host/file?x=1") == "ftp://host/file?x=1"

    def test_redact_long_strings_truncated(self):
        redacted = redact_context({"formula": "=" + "1+" * 200 + "1"})
        assert redacted["formula"].endswith("...[truncated]")
        assert len(redacted["formula"]) == 256 + len("...[truncated]")

    def test_redact_headers_whitelist(self):
        ctx = {
            "headers": {
                "user-agent": "sheetcalc/0.4",
                "Content-Type": "text/xml",
                "Authorization": "Bearer secret",
                "X-Custom": "value",
            }
        }
        assert redact_context(ctx)["headers"] == {
            "user-agent": "sheetcalc/0.4",
            "Content-Type": "text/xml",
        }

    def test_redact_nested_and_lists(self):
        ctx = {
            "request": {"session": "s1", "name": "feed"},
            "urls": ["https://example.com/a?key=secret", "plain text"],
        }
        redacted = redact_context(ctx)
        assert redacted["request"] == {"session": "[REDACTED]", "name": "feed"}
        assert redacted["urls"] == ["https://example.com/a?[REDACTED]", "plain text"]

    def test_emit_applies_redaction(self, log_dir):
        emit_info(
            EventType.webservice_fetch,
            "fetched",
            {"url": "https://example.com/?token=abc", "password": "hunter2"},
        )
        event = _lines(log_dir / "events.ndjson")[0]
        assert event["context"]["password"] == "[REDACTED]"
        assert "abc" not in event["context"]["url"]


# ---------------------------------------------------------------------------
# E) Attribution invariants
# ---------------------------------------------------------------------------


class TestAttributionInvariants:
    def test_missing_attribution_downgrades_to_warning(self, log_dir):
        emit(_event("completed", event_type=EventType.recalc_completed))
        event = _lines(log_dir / "events.ndjson")[0]
        assert event["level"] == "warning"
        assert event["context"]["_missing_attribution"] == ["cells"]

    def test_valid_attribution_keeps_level(self, log_dir):
        emit(_event("completed", event_type=EventType.recalc_completed, context={"cells": 3}))
        event = _lines(log_dir / "events.ndjson")[0]
        assert event["level"] == "info"
        assert "_missing_attribution" not in event["context"]

    def test_error_level_downgraded_too(self, log_dir):
        emit(_event("parse", level=EventLevel.error, event_type=EventType.formula_parse_error))
        assert _lines(log_dir / "events.ndjson")[0]["level"] == "warning"


# ---------------------------------------------------------------------------
# F) Events raised by evaluation
# ---------------------------------------------------------------------------


class TestEvaluationEvents:
    def test_circular_reference_event(self, log_dir):
        CellGraph({"Sheet1": {"A1": "=B1", "B1": "=A1"}}).evaluate_cell("Sheet1", "A1")
        sink = EventSink(log_dir)
        (event,) = sink.read_global(event_type="circular_reference")
        assert event["level"] == "warning"
        assert event["error_code"] == "circular_reference"
        assert event["context"]["cell"] == "Sheet1!A1"
        assert event["context"]["path"] == ["Sheet1!A1", "Sheet1!B1", "Sheet1!A1"]

    def test_parse_error_event(self, log_dir):
        with pytest.raises(FormulaParseError):
            CellGraph({"Sheet1": {"C3": "=1+"}})
        (event,) = EventSink(log_dir).read_global(event_type="formula_parse_error")
        assert event["level"] == "error"
        assert event["error_code"] == "parse_failed"
        assert event["context"] == {"formula": "=1+", "cell": "Sheet1!C3"}

    def test_unknown_function_event(self, log_dir):
        graph = CellGraph({"Sheet1": {}})
        result = evaluate(graph, "Sheet1", "=NOSUCHFN(1)", graph.config)
        assert result.code == "#NAME?"
        (event,) = EventSink(log_dir).read_global(event_type="unknown_function")
        assert event["context"]["function"] == "NOSUCHFN"
        assert event["error_code"] == "unknown_function"

    def test_recalc_lifecycle_in_run_log(self, log_dir):
        graph = CellGraph({"Sheet1": {"A1": 1, "A2": "=A1+1", "A3": "=1/0"}})
        graph.evaluate_all(run_id="recalc_1")
        run_events = EventSink(log_dir).read_run_log("recalc_1")
        assert [e["event_type"] for e in run_events] == ["recalc_started", "recalc_completed"]
        completed = run_events[-1]["context"]
        assert completed["cells"] == 3
        assert completed["errors"] == 1
        assert completed["duration_ms"] >= 0
