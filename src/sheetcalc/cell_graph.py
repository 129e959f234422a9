"""On-demand memoized cell graph that hosts formula evaluation.

Evaluates cell formulas lazily: a cell is computed only when referenced,
and the result is cached until the graph is invalidated.  Cycles across
cells (including cross-sheet) do not raise; the cell that closes the
cycle evaluates to a ``#REF!`` error naming the cycle path.

Also resolves defined names to single cells or rectangles, so formulas
like ``=SUM(Revenue)`` work against the host's grid.
"""

from __future__ import annotations

import datetime
import time
from typing import Any, Callable, Mapping

import polars as pl

from sheetcalc.config import EvaluatorConfig
from sheetcalc.formulas.context import HttpFetcher
from sheetcalc.formulas.errors import FormulaParseError, FormulaRefError
from sheetcalc.formulas.evaluator import evaluate
from sheetcalc.formulas.expr import CellRef, RangeRef
from sheetcalc.formulas.parser import parse_formula
from sheetcalc.formulas.references import column_letters, format_cell, resolve_cell
from sheetcalc.formulas.values import (
    EMPTY,
    CellValue,
    Error,
    Formula,
    RangeValue,
    from_python,
    settle,
)
from sheetcalc.logging import EventType, emit_error, emit_info, emit_warning
from sheetcalc.logging.events import CIRCULAR_REFERENCE, PARSE_FAILED

CellKey = tuple[str, int, int]


# ---------------------------------------------------------------------------
# Address helpers
# ---------------------------------------------------------------------------


def parse_addr(addr: str) -> tuple[int, int]:
    """Parse an A1 address (``$`` markers allowed) into 1-based ``(row, col)``.

    Raises:
        ValueError: If *addr* is not a plain cell address.
    """
    resolved = resolve_cell(None, addr)
    if resolved is None or resolved[0] is not None:
        raise ValueError(f"Invalid cell address: {addr!r}")
    return resolved[1], resolved[2]


def frame_cells(frame: pl.DataFrame, header: bool = True) -> dict[str, Any]:
    """Lay a DataFrame out as ``{addr: value}`` starting at A1.

    With *header*, the column names fill row 1 and data starts on row 2.
    Nulls are left blank.  Text starting with ``=`` is a formula.
    """
    cells: dict[str, Any] = {}
    letters = [column_letters(i + 1) for i in range(frame.width)]
    first_row = 1
    if header:
        for letter, column in zip(letters, frame.columns):
            cells[f"{letter}1"] = column
        first_row = 2
    for offset, row in enumerate(frame.iter_rows()):
        for letter, value in zip(letters, row):
            if value is not None:
                cells[f"{letter}{first_row + offset}"] = value
    return cells


# ---------------------------------------------------------------------------
# CellGraph
# ---------------------------------------------------------------------------


class CellGraph:
    """In-memory evaluation context with memoized cell formulas.

    Usage::

        graph = CellGraph({"Sheet1": {"A1": 2, "A2": "=A1*3"}})
        value = graph.evaluate_cell("Sheet1", "A2")   # Int(6)

        # Or evaluate every stored cell:
        results = graph.evaluate_all()

    Parameters
    ----------
    sheets_data : Mapping[str, Mapping[str, Any]]
        Mapping of sheet_name -> cells.  Each cells mapping takes cell
        addresses (e.g. "A1") to a plain value, a string starting with
        ``=``, ``{"formula": "=..."}`` or ``{"value": ...}``.
    names : Mapping[str, Mapping[str, str]] | None
        Defined names.  Each entry maps a name to ``sheet``, ``start`` and
        optionally ``end`` (e.g. ``{"sheet": "Data", "start": "B2", "end": "B10"}``).
    config : EvaluatorConfig | None
        Evaluator settings shared by every formula in the graph.
    fetcher : Callable[[str], str] | None
        Used by WEBSERVICE.  Defaults to an ``HttpFetcher`` built from the
        config's webservice limits.
    clock : Callable[[], datetime.datetime] | None
        Source of "now" for TODAY and NOW.

    Raises
    ------
    FormulaParseError
        If any formula does not parse.  Nothing is stored in that case.
    """

    def __init__(
        self,
        sheets_data: Mapping[str, Mapping[str, Any]],
        names: Mapping[str, Mapping[str, str]] | None = None,
        *,
        config: EvaluatorConfig | None = None,
        fetcher: Callable[[str], str] | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.config = config or EvaluatorConfig()
        self._fetcher = fetcher or HttpFetcher(
            timeout=self.config.webservice_timeout_seconds,
            max_bytes=self.config.webservice_max_response_chars * 4,
        )
        self._clock = clock
        self._sheets: dict[str, dict[tuple[int, int], CellValue]] = {}
        self._sources: dict[CellKey, str] = {}
        self._names: dict[str, dict[str, str]] = {}
        self._cache: dict[CellKey, CellValue] = {}
        self._in_progress: set[CellKey] = set()
        self._eval_stack: list[CellKey] = []
        self._errors: dict[tuple[str, str], str] = {}

        for sheet, cells in sheets_data.items():
            self._sheets[sheet] = {}
            for addr, raw in cells.items():
                self._store(sheet, addr, raw)
        for name, target in (names or {}).items():
            self.define_name(name, target)

    @classmethod
    def from_frames(
        cls,
        frames: Mapping[str, pl.DataFrame],
        names: Mapping[str, Mapping[str, str]] | None = None,
        *,
        header: bool = True,
        **kwargs: Any,
    ) -> CellGraph:
        """Build a graph with one sheet per DataFrame (see :func:`frame_cells`)."""
        sheets = {name: frame_cells(frame, header=header) for name, frame in frames.items()}
        return cls(sheets, names, **kwargs)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _store(self, sheet: str, addr: str, raw: Any) -> None:
        row, col = parse_addr(addr)
        key = (sheet, row, col)
        formula: str | None = None
        if isinstance(raw, Mapping):
            if "formula" in raw:
                formula = str(raw["formula"])
            else:
                raw = raw.get("value")
        elif isinstance(raw, str) and raw.startswith("=") and len(raw) > 1:
            formula = raw

        if formula is None:
            self._sheets[sheet][(row, col)] = from_python(raw)
            self._sources.pop(key, None)
            return

        try:
            expr = parse_formula(formula, max_length=self.config.max_formula_length)
        except FormulaParseError as exc:
            emit_error(
                EventType.formula_parse_error,
                exc.message,
                {"formula": formula, "cell": format_cell(row, col, sheet)},
                error_code=PARSE_FAILED,
            )
            raise
        self._sheets[sheet][(row, col)] = Formula(expr)
        self._sources[key] = formula

    def _require_sheet(self, sheet: str) -> dict[tuple[int, int], CellValue]:
        cells = self._sheets.get(sheet)
        if cells is None:
            raise FormulaRefError(sheet, available=sorted(self._sheets))
        return cells

    @property
    def sheet_names(self) -> list[str]:
        return list(self._sheets)

    def add_sheet(self, sheet: str) -> None:
        if sheet in self._sheets:
            raise ValueError(f"Sheet {sheet!r} already exists")
        self._sheets[sheet] = {}

    def set_cell(self, sheet: str, addr: str, value: Any) -> None:
        """Store a value (or ``=`` formula text) and drop every cached result."""
        self._require_sheet(sheet)
        self._store(sheet, addr, value)
        self.invalidate()

    def set_formula(self, sheet: str, addr: str, formula: str) -> None:
        """Store formula text, parsing it first.

        Raises:
            FormulaParseError: If the formula is invalid; the cell keeps its
                previous contents.
        """
        self._require_sheet(sheet)
        self._store(sheet, addr, {"formula": formula})
        self.invalidate()

    def get_formula(self, sheet: str, addr: str) -> str | None:
        """Formula text stored at a cell, or None for value cells."""
        row, col = parse_addr(addr)
        return self._sources.get((sheet, row, col))

    def define_name(self, name: str, target: Mapping[str, str]) -> None:
        """Bind *name* to ``{"sheet", "start"[, "end"]}``."""
        if "sheet" not in target or "start" not in target:
            raise ValueError(f"Name {name!r} needs 'sheet' and 'start'")
        parse_addr(target["start"])
        if target.get("end"):
            parse_addr(target["end"])
        self._names[name.upper()] = dict(target)

    # ------------------------------------------------------------------
    # EvaluationContext implementation
    # ------------------------------------------------------------------

    def get_cell(self, sheet: str, row: int, col: int) -> CellValue:
        """Resolve a cell value, triggering recursive evaluation if needed."""
        return self._evaluate(sheet, row, col)

    def get_range(
        self, sheet: str, start_row: int, start_col: int, end_row: int, end_col: int
    ) -> RangeValue:
        self._require_sheet(sheet)
        rows = [
            [self._evaluate(sheet, r, c) for c in range(start_col, end_col + 1)]
            for r in range(start_row, end_row + 1)
        ]
        return RangeValue.from_rows(rows)

    def current_position(self) -> tuple[str, int, int] | None:
        if not self._eval_stack:
            return None
        return self._eval_stack[-1]

    def http_fetch(self, url: str) -> str:
        return self._fetcher(url)

    def resolve_name(self, sheet: str | None, name: str) -> CellRef | RangeRef | None:
        defn = self._names.get(name.upper())
        if defn is None:
            return None
        start_row, start_col = parse_addr(defn["start"])
        if not defn.get("end"):
            return CellRef(defn["sheet"], start_row, start_col)
        end_row, end_col = parse_addr(defn["end"])
        return RangeRef(defn["sheet"], start_row, start_col, end_row, end_col)

    def now(self) -> datetime.datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.datetime.now()

    # ------------------------------------------------------------------
    # Core evaluation
    # ------------------------------------------------------------------

    def evaluate_cell(self, sheet: str, addr: str) -> CellValue:
        """Evaluate a single cell, with memoization and cycle detection.

        Args:
            sheet: Sheet name.
            addr: Cell address (e.g. "A1").

        Returns:
            The computed cell value.  Blank cells are ``EMPTY``; failures,
            including circular references, are ``Error`` values.

        Raises:
            FormulaRefError: If the sheet doesn't exist.
        """
        row, col = parse_addr(addr)
        return self._evaluate(sheet, row, col)

    def _evaluate(self, sheet: str, row: int, col: int) -> CellValue:
        key = (sheet, row, col)

        # Already computed?
        if key in self._cache:
            return self._cache[key]

        if key in self._in_progress:
            return self._cycle(key)

        cell = self._require_sheet(sheet).get((row, col), EMPTY)
        if not isinstance(cell, Formula):
            return cell

        self._in_progress.add(key)
        self._eval_stack.append(key)
        try:
            result = settle(evaluate(self, sheet, cell.expression, self.config))
        finally:
            self._in_progress.discard(key)
            self._eval_stack.pop()

        if isinstance(result, Error):
            self._errors.setdefault((sheet, format_cell(row, col)), result.message)
        self._cache[key] = result
        return result

    def _cycle(self, key: CellKey) -> Error:
        start = self._eval_stack.index(key)
        path = [format_cell(r, c, s) for s, r, c in self._eval_stack[start:] + [key]]
        message = f"Circular reference: {' -> '.join(path)}"
        sheet, row, col = key
        self._errors[(sheet, format_cell(row, col))] = message
        emit_warning(
            EventType.circular_reference,
            message,
            {"cell": path[0], "path": path},
            error_code=CIRCULAR_REFERENCE,
        )
        return Error(message, "#REF!")

    def evaluate_all(self, run_id: str | None = None) -> dict[str, dict[str, CellValue]]:
        """Evaluate every stored cell across all sheets.

        Args:
            run_id: Also log this pass's events to ``runs/<run_id>.ndjson``.

        Returns:
            Dict of sheet_name -> {addr: computed_value}, in row-major order.
        """
        started = time.monotonic()
        emit_info(
            EventType.recalc_started,
            "Recalculation started",
            {"sheets": len(self._sheets)},
            run_id=run_id,
        )
        results: dict[str, dict[str, CellValue]] = {}
        count = 0
        for sheet, cells in self._sheets.items():
            sheet_results: dict[str, CellValue] = {}
            for row, col in sorted(cells):
                sheet_results[format_cell(row, col)] = self._evaluate(sheet, row, col)
                count += 1
            results[sheet] = sheet_results
        emit_info(
            EventType.recalc_completed,
            f"Recalculated {count} cells",
            {
                "cells": count,
                "errors": len(self._errors),
                "duration_ms": round((time.monotonic() - started) * 1000, 3),
            },
            run_id=run_id,
        )
        return results

    def get_errors(self) -> dict[tuple[str, str], str]:
        """Return the error results collected since the last invalidation.

        Returns:
            Dict of (sheet, addr) -> error message.
        """
        return dict(self._errors)

    def invalidate(self) -> None:
        """Clear all cached values and errors.

        Called automatically by ``set_cell`` and ``set_formula``.
        """
        self._cache.clear()
        self._in_progress.clear()
        self._eval_stack.clear()
        self._errors.clear()
