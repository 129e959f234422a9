"""Lookup formula functions: VLOOKUP, HLOOKUP, MATCH, XMATCH, XLOOKUP, INDEX, ...

Only exact matching is supported.  A text lookup value containing ``*`` or
``?`` matches by wildcard, case-insensitively.
"""

from __future__ import annotations

import math
from typing import Any

from sheetcalc.formulas.arguments import as_range, boolean, check_arity, integer, scalar
from sheetcalc.formulas.coercion import require_number, values_equal
from sheetcalc.formulas.criteria import has_wildcards, text_equals
from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.expr import CellRef, Name, RangeRef
from sheetcalc.formulas.values import (
    CellValue,
    Empty,
    Error,
    Int,
    RangeValue,
    String,
    settle,
)


def _lookup_value(args: list, func: str) -> CellValue:
    value = scalar(args[0], func)
    if isinstance(value, Error):
        raise CellValueError(value)
    return value


def _matches(lookup: CellValue, candidate: CellValue) -> bool:
    candidate = settle(candidate)
    if isinstance(candidate, Error):
        return False
    if isinstance(lookup, String) and has_wildcards(lookup.text):
        return isinstance(candidate, String) and text_equals(lookup.text, candidate.text)
    return values_equal(lookup, candidate)


def _not_found(func: str) -> FormulaFunctionError:
    return FormulaFunctionError(func, f"{func}: value not found", "#N/A")


def _find(lookup: CellValue, values: tuple, reverse: bool = False) -> int | None:
    """0-based position of the first (or last) match."""
    order = range(len(values) - 1, -1, -1) if reverse else range(len(values))
    for i in order:
        if _matches(lookup, values[i]):
            return i
    return None


def _vector(arg: Any, func: str) -> RangeValue:
    rng = as_range(arg)
    if not rng.is_vector:
        raise FormulaFunctionError(func, f"{func} lookup_array must be a single row or column", "#N/A")
    return rng


def _fn_vlookup(args: list, scope: Any) -> CellValue:
    """VLOOKUP(lookup_value, table_array, col_index_num, [range_lookup])."""
    check_arity("VLOOKUP", args, 3, 4)
    lookup = _lookup_value(args, "VLOOKUP")
    table = as_range(args[1])
    col = integer(args, 2, "VLOOKUP")
    if boolean(args, 3, "VLOOKUP", default=False):
        raise FormulaFunctionError(
            "VLOOKUP", "VLOOKUP currently only supports exact match (range_lookup = FALSE)", "#N/A"
        )
    if col < 1:
        raise FormulaFunctionError("VLOOKUP", "VLOOKUP col_index_num must be at least 1")
    if col > table.cols:
        raise FormulaFunctionError("VLOOKUP", "VLOOKUP col_index_num out of bounds for table_array", "#REF!")
    row = _find(lookup, table.column(1))
    if row is None:
        raise _not_found("VLOOKUP")
    return settle(table.get(row + 1, col))


def _fn_hlookup(args: list, scope: Any) -> CellValue:
    """HLOOKUP(lookup_value, table_array, row_index_num, [range_lookup])."""
    check_arity("HLOOKUP", args, 3, 4)
    lookup = _lookup_value(args, "HLOOKUP")
    table = as_range(args[1])
    row = integer(args, 2, "HLOOKUP")
    if boolean(args, 3, "HLOOKUP", default=False):
        raise FormulaFunctionError(
            "HLOOKUP", "HLOOKUP currently only supports exact match (range_lookup = FALSE)", "#N/A"
        )
    if row < 1:
        raise FormulaFunctionError("HLOOKUP", "HLOOKUP row_index_num must be at least 1")
    if row > table.rows:
        raise FormulaFunctionError("HLOOKUP", "HLOOKUP row_index_num out of bounds for table_array", "#REF!")
    col = _find(lookup, table.row(1))
    if col is None:
        raise _not_found("HLOOKUP")
    return settle(table.get(row, col + 1))


def _fn_match(args: list, scope: Any) -> Int:
    """MATCH(lookup_value, lookup_array, [match_type]) -- 1-based position."""
    check_arity("MATCH", args, 2, 3)
    lookup = _lookup_value(args, "MATCH")
    vector = _vector(args[1], "MATCH")
    if integer(args, 2, "MATCH", default=0) != 0:
        raise FormulaFunctionError(
            "MATCH", "MATCH currently only supports match_type = 0 (exact match)", "#N/A"
        )
    pos = _find(lookup, vector.values)
    if pos is None:
        raise _not_found("MATCH")
    return Int(pos + 1)


def _search_reverse(args: list, index: int, func: str) -> bool:
    mode = integer(args, index, func, default=1)
    if mode not in (1, -1):
        raise FormulaFunctionError(func, f"{func} search_mode must be 1 or -1")
    return mode == -1


def _exact_mode(args: list, index: int, func: str) -> None:
    if integer(args, index, func, default=0) != 0:
        raise FormulaFunctionError(func, f"{func} currently only supports match_mode = 0 (exact match)", "#N/A")


def _fn_xmatch(args: list, scope: Any) -> Int:
    """XMATCH(lookup_value, lookup_array, [match_mode], [search_mode])."""
    check_arity("XMATCH", args, 2, 4)
    lookup = _lookup_value(args, "XMATCH")
    vector = _vector(args[1], "XMATCH")
    _exact_mode(args, 2, "XMATCH")
    pos = _find(lookup, vector.values, reverse=_search_reverse(args, 3, "XMATCH"))
    if pos is None:
        raise _not_found("XMATCH")
    return Int(pos + 1)


def _fn_xlookup(args: list, scope: Any) -> CellValue | RangeValue:
    """XLOOKUP(lookup_value, lookup_array, return_array, [if_not_found], [match_mode], [search_mode])."""
    check_arity("XLOOKUP", args, 3, 6)
    lookup = _lookup_value(args, "XLOOKUP")
    keys = _vector(args[1], "XLOOKUP")
    returns = as_range(args[2])
    _exact_mode(args, 4, "XLOOKUP")
    reverse = _search_reverse(args, 5, "XLOOKUP")

    vertical = keys.cols == 1 and keys.rows == returns.rows
    horizontal = keys.rows == 1 and keys.cols == returns.cols
    if not (vertical or horizontal):
        raise FormulaFunctionError("XLOOKUP", "XLOOKUP return_array must match lookup_array in size")

    pos = _find(lookup, keys.values, reverse=reverse)
    if pos is None:
        if len(args) >= 4 and not isinstance(scalar(args[3], "XLOOKUP"), Empty):
            return scalar(args[3], "XLOOKUP")
        raise _not_found("XLOOKUP")

    if vertical:
        hit = returns.row(pos + 1)
        return settle(hit[0]) if returns.cols == 1 else RangeValue(hit, 1, returns.cols)
    hit = returns.column(pos + 1)
    return settle(hit[0]) if returns.rows == 1 else RangeValue(hit, returns.rows, 1)


def _fn_index(args: list, scope: Any) -> CellValue | RangeValue:
    """INDEX(array, row_num, [column_num]).

    A zero row or column selects the whole column or row.  With one index
    on a single-row array the index counts columns.
    """
    check_arity("INDEX", args, 2, 3)
    array = as_range(args[0])
    row = integer(args, 1, "INDEX")
    if len(args) == 2:
        if array.rows == 1 and array.cols > 1:
            row, col = 1, row
        elif array.cols == 1:
            col = 1
        else:
            col = 0
    else:
        col = integer(args, 2, "INDEX")

    if row < 0 or col < 0:
        raise FormulaFunctionError("INDEX", "INDEX position must not be negative")
    if row > array.rows or col > array.cols:
        raise FormulaFunctionError("INDEX", "INDEX position out of range", "#REF!")
    if row == 0 and col == 0:
        return array
    if row == 0:
        return RangeValue(array.column(col), array.rows, 1)
    if col == 0:
        return RangeValue(array.row(row), 1, array.cols)
    return settle(array.get(row, col))


def _fn_choose(raw_args: list, scope: Any) -> CellValue | RangeValue:
    """CHOOSE(index_num, value1, value2, ...) -- only the chosen value is evaluated."""
    check_arity("CHOOSE", raw_args, 2, None)
    index_value = scope.scalar(raw_args[0])
    if isinstance(index_value, Error):
        return index_value
    index = math.trunc(require_number(index_value, "CHOOSE"))
    if index < 1 or index >= len(raw_args):
        raise FormulaFunctionError("CHOOSE", "CHOOSE index_num out of range")
    return scope.evaluate(raw_args[index])


def _reference_arg(raw_args: list, scope: Any, func: str) -> CellRef | RangeRef | None:
    check_arity(func, raw_args, 0, 1)
    if not raw_args:
        return None
    ref = raw_args[0]
    if isinstance(ref, Name):
        ref = scope.resolve_name(ref.name)
        if ref is None:
            raise FormulaFunctionError(func, f"#NAME? Unknown name: {raw_args[0].name}", "#NAME?")
    if not isinstance(ref, (CellRef, RangeRef)):
        raise FormulaFunctionError(func, f"{func} requires a cell or range reference")
    return ref


def _fn_row(raw_args: list, scope: Any) -> Int:
    """ROW([reference]) -- row of the reference, or of the current cell."""
    ref = _reference_arg(raw_args, scope, "ROW")
    if ref is None:
        position = scope.position()
        if position is None:
            raise FormulaFunctionError("ROW", "ROW() needs a current cell position")
        return Int(position[1])
    if isinstance(ref, CellRef):
        return Int(ref.row)
    return Int(ref.bounds()[0])


def _fn_column(raw_args: list, scope: Any) -> Int:
    """COLUMN([reference]) -- column of the reference, or of the current cell."""
    ref = _reference_arg(raw_args, scope, "COLUMN")
    if ref is None:
        position = scope.position()
        if position is None:
            raise FormulaFunctionError("COLUMN", "COLUMN() needs a current cell position")
        return Int(position[2])
    if isinstance(ref, CellRef):
        return Int(ref.col)
    return Int(ref.bounds()[1])


def _fn_rows(args: list, scope: Any) -> Int:
    check_arity("ROWS", args, 1)
    return Int(as_range(args[0]).rows)


def _fn_columns(args: list, scope: Any) -> Int:
    check_arity("COLUMNS", args, 1)
    return Int(as_range(args[0]).cols)


LOOKUP_FUNCTIONS: dict[str, Any] = {
    "VLOOKUP": _fn_vlookup,
    "HLOOKUP": _fn_hlookup,
    "MATCH": _fn_match,
    "XMATCH": _fn_xmatch,
    "XLOOKUP": _fn_xlookup,
    "INDEX": _fn_index,
    "CHOOSE": _fn_choose,
    "ROW": _fn_row,
    "COLUMN": _fn_column,
    "ROWS": _fn_rows,
    "COLUMNS": _fn_columns,
}

LOOKUP_LAZY_FUNCTIONS: set[str] = {"CHOOSE", "ROW", "COLUMN"}
