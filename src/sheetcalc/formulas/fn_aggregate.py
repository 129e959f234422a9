"""Aggregate formula functions: SUM, AVERAGE, COUNT and the *IF/*IFS family."""

from __future__ import annotations

import math
from typing import Any

from sheetcalc.formulas.arguments import (
    as_range,
    check_arity,
    collect_numbers,
    collect_numbers_a,
    iter_values,
    scalar,
)
from sheetcalc.formulas.coercion import is_blank, strict_number
from sheetcalc.formulas.criteria import Criteria, criteria_from_value, matches_criteria
from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.values import (
    DateTime,
    Empty,
    Error,
    Float,
    Formula,
    Int,
    RangeValue,
    settle,
)


def _finite(value: float, func: str) -> Float:
    if not math.isfinite(value):
        raise FormulaFunctionError(func, f"{func} result is not a finite number", "#NUM!")
    return Float(value)


def _fn_sum(args: list, scope: Any) -> Float:
    return Float(math.fsum(collect_numbers(args, "SUM")))


def _fn_sumsq(args: list, scope: Any) -> Float:
    return _finite(math.fsum(n * n for n in collect_numbers(args, "SUMSQ")), "SUMSQ")


def _fn_product(args: list, scope: Any) -> Float:
    numbers = collect_numbers(args, "PRODUCT")
    if not numbers:
        return Float(0.0)
    return _finite(math.prod(numbers), "PRODUCT")


def _fn_average(args: list, scope: Any) -> Float:
    numbers = collect_numbers(args, "AVERAGE")
    if not numbers:
        raise FormulaFunctionError("AVERAGE", "AVERAGE has no numeric values", "#DIV/0!")
    return Float(math.fsum(numbers) / len(numbers))


def _fn_averagea(args: list, scope: Any) -> Float:
    numbers = collect_numbers_a(args, "AVERAGEA")
    if not numbers:
        raise FormulaFunctionError("AVERAGEA", "AVERAGEA has no values", "#DIV/0!")
    return Float(math.fsum(numbers) / len(numbers))


def _fn_avedev(args: list, scope: Any) -> Float:
    numbers = collect_numbers(args, "AVEDEV")
    if not numbers:
        raise FormulaFunctionError("AVEDEV", "AVEDEV has no numeric values", "#NUM!")
    mean = math.fsum(numbers) / len(numbers)
    return Float(math.fsum(abs(n - mean) for n in numbers) / len(numbers))


def _fn_min(args: list, scope: Any) -> Float:
    numbers = collect_numbers(args, "MIN")
    return Float(min(numbers) if numbers else 0.0)


def _fn_max(args: list, scope: Any) -> Float:
    numbers = collect_numbers(args, "MAX")
    return Float(max(numbers) if numbers else 0.0)


def _fn_mina(args: list, scope: Any) -> Float:
    numbers = collect_numbers_a(args, "MINA")
    return Float(min(numbers) if numbers else 0.0)


def _fn_maxa(args: list, scope: Any) -> Float:
    numbers = collect_numbers_a(args, "MAXA")
    return Float(max(numbers) if numbers else 0.0)


def _fn_count(args: list, scope: Any) -> Int:
    """COUNT(...) -- numbers and dates; errors are not counted."""
    count = 0
    for value, _ in iter_values(args):
        if isinstance(value, (Int, Float, DateTime)):
            count += 1
    return Int(count)


def _fn_counta(args: list, scope: Any) -> Int:
    """COUNTA(...) -- every non-empty value, errors included."""
    count = 0
    for arg in args:
        values = arg.values if isinstance(arg, RangeValue) else (arg,)
        for value in values:
            if isinstance(value, Formula) and value.cached is None:
                continue
            if not isinstance(settle(value), Empty):
                count += 1
    return Int(count)


def _fn_countblank(args: list, scope: Any) -> Int:
    check_arity("COUNTBLANK", args, 1)
    return Int(sum(1 for value in as_range(args[0]).values if is_blank(value)))


# ---------------------------------------------------------------------------
# Criteria aggregates
# ---------------------------------------------------------------------------


def _criteria_arg(arg: Any, func: str) -> Criteria:
    value = scalar(arg, func)
    if isinstance(value, Error):
        raise CellValueError(value)
    return criteria_from_value(value)


def _same_shape(a: RangeValue, b: RangeValue, func: str) -> None:
    if a.rows != b.rows or a.cols != b.cols:
        raise FormulaFunctionError(func, f"{func} ranges must have the same size")


def _matching_mask(args: list, start: int, func: str, shape: RangeValue | None) -> list[bool]:
    """AND of every (criteria_range, criteria) pair from ``args[start:]``."""
    pairs = args[start:]
    if not pairs or len(pairs) % 2:
        raise FormulaFunctionError(func, f"{func} expects criteria_range/criteria pairs")
    mask: list[bool] | None = None
    for i in range(0, len(pairs), 2):
        rng = as_range(pairs[i])
        if shape is None:
            shape = rng
        _same_shape(shape, rng, func)
        criteria = _criteria_arg(pairs[i + 1], func)
        hits = [matches_criteria(v, criteria) for v in rng.values]
        mask = hits if mask is None else [a and b for a, b in zip(mask, hits)]
    return mask


def _matched_numbers(values: tuple, mask: list[bool]) -> list[float]:
    numbers: list[float] = []
    for value, hit in zip(values, mask):
        if not hit:
            continue
        value = settle(value)
        if isinstance(value, Error):
            raise CellValueError(value)
        n = strict_number(value)
        if n is not None:
            numbers.append(n)
    return numbers


def _single_criteria(args: list, func: str) -> tuple[RangeValue, list[bool]]:
    """Target range and match mask for SUMIF/AVERAGEIF-style arguments."""
    check_arity(func, args, 2, 3)
    rng = as_range(args[0])
    criteria = _criteria_arg(args[1], func)
    target = rng
    if len(args) == 3:
        target = as_range(args[2])
        _same_shape(rng, target, func)
    return target, [matches_criteria(v, criteria) for v in rng.values]


def _fn_sumif(args: list, scope: Any) -> Float:
    """SUMIF(range, criteria, [sum_range])."""
    target, mask = _single_criteria(args, "SUMIF")
    return Float(math.fsum(_matched_numbers(target.values, mask)))


def _fn_averageif(args: list, scope: Any) -> Float:
    """AVERAGEIF(range, criteria, [average_range])."""
    target, mask = _single_criteria(args, "AVERAGEIF")
    numbers = _matched_numbers(target.values, mask)
    if not numbers:
        raise FormulaFunctionError("AVERAGEIF", "AVERAGEIF has no matching numeric values", "#DIV/0!")
    return Float(math.fsum(numbers) / len(numbers))


def _fn_countif(args: list, scope: Any) -> Int:
    """COUNTIF(range, criteria)."""
    check_arity("COUNTIF", args, 2)
    criteria = _criteria_arg(args[1], "COUNTIF")
    return Int(sum(1 for v in as_range(args[0]).values if matches_criteria(v, criteria)))


def _fn_sumifs(args: list, scope: Any) -> Float:
    """SUMIFS(sum_range, criteria_range1, criteria1, ...)."""
    check_arity("SUMIFS", args, 3, None)
    target = as_range(args[0])
    mask = _matching_mask(args, 1, "SUMIFS", target)
    return Float(math.fsum(_matched_numbers(target.values, mask)))


def _fn_averageifs(args: list, scope: Any) -> Float:
    """AVERAGEIFS(average_range, criteria_range1, criteria1, ...)."""
    check_arity("AVERAGEIFS", args, 3, None)
    target = as_range(args[0])
    numbers = _matched_numbers(target.values, _matching_mask(args, 1, "AVERAGEIFS", target))
    if not numbers:
        raise FormulaFunctionError("AVERAGEIFS", "AVERAGEIFS has no matching numeric values", "#DIV/0!")
    return Float(math.fsum(numbers) / len(numbers))


def _fn_countifs(args: list, scope: Any) -> Int:
    """COUNTIFS(criteria_range1, criteria1, ...)."""
    check_arity("COUNTIFS", args, 2, None)
    return Int(sum(_matching_mask(args, 0, "COUNTIFS", None)))


AGGREGATE_FUNCTIONS: dict[str, Any] = {
    "SUM": _fn_sum,
    "SUMSQ": _fn_sumsq,
    "PRODUCT": _fn_product,
    "AVERAGE": _fn_average,
    "AVERAGEA": _fn_averagea,
    "AVEDEV": _fn_avedev,
    "MIN": _fn_min,
    "MAX": _fn_max,
    "MINA": _fn_mina,
    "MAXA": _fn_maxa,
    "COUNT": _fn_count,
    "COUNTA": _fn_counta,
    "COUNTBLANK": _fn_countblank,
    "SUMIF": _fn_sumif,
    "SUMIFS": _fn_sumifs,
    "COUNTIF": _fn_countif,
    "COUNTIFS": _fn_countifs,
    "AVERAGEIF": _fn_averageif,
    "AVERAGEIFS": _fn_averageifs,
}

# COUNT and COUNTA classify error values instead of propagating them.
AGGREGATE_ERROR_TOLERANT: set[str] = {"COUNT", "COUNTA"}
