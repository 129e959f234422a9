"""Database formula functions: DSUM, DCOUNT, DGET and the rest of the D* family.

Every function takes ``(database, field, criteria)``.  The database is a
range whose first row holds column headers and whose remaining rows are
records.  The criteria range has a header row naming database columns
followed by one or more condition rows.  Conditions in the same row must
all hold; a record matches when any condition row holds.  A condition row
with no conditions matches nothing.
"""

from __future__ import annotations

import math
import statistics
from typing import Any, Callable

from sheetcalc.formulas.arguments import as_range, check_arity, collect_numbers, scalar
from sheetcalc.formulas.coercion import is_blank, to_text
from sheetcalc.formulas.criteria import Criteria, criteria_from_value, matches_criteria
from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.values import CellValue, Error, Float, Int, RangeValue, String, settle


def _headers(table: RangeValue) -> list[str]:
    return [to_text(value).strip().casefold() for value in table.row(1)]


def _field_index(arg: Any, headers: list[str], func: str) -> int:
    """0-based column for a header text or a 1-based column number."""
    field = scalar(arg, func)
    if isinstance(field, Error):
        raise CellValueError(field)
    if isinstance(field, (Int, Float)):
        n = math.trunc(field.value)
        if 1 <= n <= len(headers):
            return n - 1
    elif isinstance(field, String):
        key = field.text.strip().casefold()
        if key in headers:
            return headers.index(key)
    raise FormulaFunctionError(func, f"{func} field must be a column header or a 1-based column number")


def _condition_rows(criteria: RangeValue, headers: list[str], func: str) -> list[list[tuple[int, Criteria]]]:
    """Parsed (column, criteria) pairs for each condition row."""
    columns: list[int | None] = []
    for label in _headers(criteria):
        if not label:
            columns.append(None)
        elif label in headers:
            columns.append(headers.index(label))
        else:
            raise FormulaFunctionError(func, f"{func} criteria column {label!r} is not in the database")

    rows = []
    for r in range(2, criteria.rows + 1):
        conditions = []
        for column, value in zip(columns, criteria.row(r)):
            if is_blank(value):
                continue
            if column is None:
                # A condition under a blank header can never hold.
                conditions = []
                break
            conditions.append((column, criteria_from_value(value)))
        rows.append(conditions)
    return rows


def _matching_values(args: list, func: str) -> list[CellValue]:
    """Field values of the records the criteria select."""
    check_arity(func, args, 3)
    database = as_range(args[0])
    criteria = as_range(args[2])
    if database.rows < 2:
        raise FormulaFunctionError(func, f"{func} database needs a header row and at least one record")
    if criteria.rows < 2:
        raise FormulaFunctionError(func, f"{func} criteria need a header row and at least one condition row")
    headers = _headers(database)
    field = _field_index(args[1], headers, func)
    condition_rows = _condition_rows(criteria, headers, func)

    selected = []
    for r in range(2, database.rows + 1):
        record = database.row(r)
        if any(
            conditions and all(matches_criteria(record[col], crit) for col, crit in conditions)
            for conditions in condition_rows
        ):
            selected.append(record[field])
    return selected


def _numbers(args: list, func: str) -> list[float]:
    return collect_numbers([RangeValue.column_of(_matching_values(args, func))], func)


def _fn_dsum(args: list, scope: Any) -> Float:
    return Float(math.fsum(_numbers(args, "DSUM")))


def _fn_dproduct(args: list, scope: Any) -> Float:
    numbers = _numbers(args, "DPRODUCT")
    return Float(math.prod(numbers) if numbers else 0.0)


def _fn_daverage(args: list, scope: Any) -> Float:
    numbers = _numbers(args, "DAVERAGE")
    if not numbers:
        raise FormulaFunctionError("DAVERAGE", "DAVERAGE found no numeric values", "#DIV/0!")
    return Float(math.fsum(numbers) / len(numbers))


def _fn_dcount(args: list, scope: Any) -> Int:
    return Int(len(_numbers(args, "DCOUNT")))


def _fn_dcounta(args: list, scope: Any) -> Int:
    return Int(sum(1 for value in _matching_values(args, "DCOUNTA") if not is_blank(value)))


def _fn_dmax(args: list, scope: Any) -> Float:
    numbers = _numbers(args, "DMAX")
    return Float(max(numbers) if numbers else 0.0)


def _fn_dmin(args: list, scope: Any) -> Float:
    numbers = _numbers(args, "DMIN")
    return Float(min(numbers) if numbers else 0.0)


def _fn_dget(args: list, scope: Any) -> CellValue:
    """DGET -- the field of the single matching record."""
    values = _matching_values(args, "DGET")
    if not values:
        raise FormulaFunctionError("DGET", "DGET found no matching record")
    if len(values) > 1:
        raise FormulaFunctionError("DGET", "DGET found more than one matching record", "#NUM!")
    return settle(values[0])


def _spread(func: str, minimum: int, stat: Callable[[list[float]], float]) -> Callable[[list, Any], Float]:
    def evaluate(args: list, scope: Any) -> Float:
        numbers = _numbers(args, func)
        if len(numbers) < minimum:
            raise FormulaFunctionError(func, f"{func} requires at least {minimum} numeric value(s)", "#DIV/0!")
        return Float(stat(numbers))

    return evaluate


DATABASE_FUNCTIONS: dict[str, Any] = {
    "DSUM": _fn_dsum,
    "DPRODUCT": _fn_dproduct,
    "DAVERAGE": _fn_daverage,
    "DCOUNT": _fn_dcount,
    "DCOUNTA": _fn_dcounta,
    "DMAX": _fn_dmax,
    "DMIN": _fn_dmin,
    "DGET": _fn_dget,
    "DSTDEV": _spread("DSTDEV", 2, statistics.stdev),
    "DSTDEVP": _spread("DSTDEVP", 1, statistics.pstdev),
    "DVAR": _spread("DVAR", 2, statistics.variance),
    "DVARP": _spread("DVARP", 1, statistics.pvariance),
}
