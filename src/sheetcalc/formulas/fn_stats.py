"""Statistical formula functions: MEDIAN, MODE, STDEV, VAR, RANK, PERCENTILE, QUARTILE, ..."""

from __future__ import annotations

import math
import statistics
from typing import Any

from sheetcalc.formulas.arguments import (
    check_arity,
    collect_numbers,
    flatten_numbers,
    integer,
    number,
)
from sheetcalc.formulas.errors import FormulaFunctionError
from sheetcalc.formulas.values import Float, Int


def _numbers(args: list, func: str, minimum: int = 1) -> list[float]:
    """Numeric values of *args*, requiring at least *minimum* of them."""
    check_arity(func, args, 1, None)
    numbers = collect_numbers(args, func)
    if len(numbers) < minimum:
        noun = "one numeric value" if minimum == 1 else f"{minimum} numeric values"
        code = "#NUM!" if minimum == 1 else "#DIV/0!"
        raise FormulaFunctionError(func, f"{func} requires at least {noun}", code)
    return numbers


def _fn_median(args: list, scope: Any) -> Float:
    return Float(float(statistics.median(_numbers(args, "MEDIAN"))))


def _fn_mode(args: list, scope: Any) -> Float:
    """MODE(...) -- most frequent value; ties go to the first one seen."""
    numbers = _numbers(args, "MODE")
    counts: dict[float, int] = {}
    for n in numbers:
        counts[n] = counts.get(n, 0) + 1
    best = max(counts.values())
    if best < 2:
        raise FormulaFunctionError("MODE", "MODE requires at least one repeated value", "#N/A")
    return Float(next(n for n in numbers if counts[n] == best))


def _fn_stdev_s(args: list, scope: Any) -> Float:
    return Float(statistics.stdev(_numbers(args, "STDEV", 2)))


def _fn_stdev_p(args: list, scope: Any) -> Float:
    return Float(statistics.pstdev(_numbers(args, "STDEV.P")))


def _fn_var_s(args: list, scope: Any) -> Float:
    return Float(statistics.variance(_numbers(args, "VAR", 2)))


def _fn_var_p(args: list, scope: Any) -> Float:
    return Float(statistics.pvariance(_numbers(args, "VAR.P")))


def _fn_devsq(args: list, scope: Any) -> Float:
    """DEVSQ(...) -- sum of squared deviations from the mean."""
    numbers = _numbers(args, "DEVSQ")
    mean = math.fsum(numbers) / len(numbers)
    return Float(math.fsum((n - mean) ** 2 for n in numbers))


def _fn_geomean(args: list, scope: Any) -> Float:
    numbers = _numbers(args, "GEOMEAN")
    if any(n <= 0 for n in numbers):
        raise FormulaFunctionError("GEOMEAN", "GEOMEAN values must all be positive", "#NUM!")
    return Float(math.exp(math.fsum(math.log(n) for n in numbers) / len(numbers)))


def _kth(args: list, func: str, largest: bool) -> Float:
    check_arity(func, args, 2)
    numbers = flatten_numbers(args[0], func)
    if not numbers:
        raise FormulaFunctionError(func, f"{func} requires at least one numeric value", "#NUM!")
    k = integer(args, 1, func)
    if k < 1 or k > len(numbers):
        raise FormulaFunctionError(func, f"{func} k must be between 1 and {len(numbers)}", "#NUM!")
    ordered = sorted(numbers, reverse=largest)
    return Float(ordered[k - 1])


def _fn_large(args: list, scope: Any) -> Float:
    """LARGE(array, k) -- k-th largest value."""
    return _kth(args, "LARGE", largest=True)


def _fn_small(args: list, scope: Any) -> Float:
    """SMALL(array, k) -- k-th smallest value."""
    return _kth(args, "SMALL", largest=False)


# ---------------------------------------------------------------------------
# Ranking and percentiles
# ---------------------------------------------------------------------------


def _rank(args: list, func: str) -> tuple[int, int]:
    """(rank of the first tie, size of the tie) for RANK-style calls."""
    check_arity(func, args, 2, 3)
    value = number(args, 0, func)
    numbers = flatten_numbers(args[1], func)
    ascending = number(args, 2, func, default=0.0) != 0
    ties = numbers.count(value)
    if not ties:
        raise FormulaFunctionError(func, f"{func}: {value:g} is not in the list", "#N/A")
    if ascending:
        ahead = sum(1 for n in numbers if n < value)
    else:
        ahead = sum(1 for n in numbers if n > value)
    return ahead + 1, ties


def _fn_rank(args: list, scope: Any) -> Int:
    """RANK(number, ref, [order]) -- ties share the best rank; order 0 is descending."""
    first, _ = _rank(args, "RANK")
    return Int(first)


def _fn_rank_avg(args: list, scope: Any) -> Float:
    """RANK.AVG(number, ref, [order]) -- ties share their average rank."""
    first, ties = _rank(args, "RANK.AVG")
    return Float(first + (ties - 1) / 2)


def _sorted_sample(args: list, func: str) -> list[float]:
    check_arity(func, args, 2)
    numbers = flatten_numbers(args[0], func)
    if not numbers:
        raise FormulaFunctionError(func, f"{func} requires at least one numeric value", "#NUM!")
    return sorted(numbers)


def _interpolate(ordered: list[float], position: float) -> float:
    """Linear interpolation at a 0-based fractional index."""
    low = math.floor(position)
    if low >= len(ordered) - 1:
        return ordered[-1]
    return ordered[low] + (position - low) * (ordered[low + 1] - ordered[low])


def _percentile_inc(ordered: list[float], k: float, func: str) -> float:
    if k < 0 or k > 1:
        raise FormulaFunctionError(func, f"{func} k must be between 0 and 1", "#NUM!")
    return _interpolate(ordered, (len(ordered) - 1) * k)


def _percentile_exc(ordered: list[float], k: float, func: str) -> float:
    position = (len(ordered) + 1) * k - 1
    if k <= 0 or k >= 1 or position < 0 or position > len(ordered) - 1:
        raise FormulaFunctionError(func, f"{func} k is outside the range the data supports", "#NUM!")
    return _interpolate(ordered, position)


def _fn_percentile_inc(args: list, scope: Any) -> Float:
    """PERCENTILE(array, k) -- inclusive, k in [0, 1]."""
    ordered = _sorted_sample(args, "PERCENTILE")
    return Float(_percentile_inc(ordered, number(args, 1, "PERCENTILE"), "PERCENTILE"))


def _fn_percentile_exc(args: list, scope: Any) -> Float:
    """PERCENTILE.EXC(array, k) -- exclusive, k strictly between 0 and 1."""
    ordered = _sorted_sample(args, "PERCENTILE.EXC")
    return Float(_percentile_exc(ordered, number(args, 1, "PERCENTILE.EXC"), "PERCENTILE.EXC"))


def _fn_quartile_inc(args: list, scope: Any) -> Float:
    """QUARTILE(array, quart) -- quart 0 to 4, 0 and 4 being MIN and MAX."""
    ordered = _sorted_sample(args, "QUARTILE")
    quart = integer(args, 1, "QUARTILE")
    if quart < 0 or quart > 4:
        raise FormulaFunctionError("QUARTILE", "QUARTILE quart must be 0 to 4", "#NUM!")
    return Float(_percentile_inc(ordered, quart / 4, "QUARTILE"))


def _fn_quartile_exc(args: list, scope: Any) -> Float:
    """QUARTILE.EXC(array, quart) -- quart 1 to 3."""
    ordered = _sorted_sample(args, "QUARTILE.EXC")
    quart = integer(args, 1, "QUARTILE.EXC")
    if quart < 1 or quart > 3:
        raise FormulaFunctionError("QUARTILE.EXC", "QUARTILE.EXC quart must be 1 to 3", "#NUM!")
    return Float(_percentile_exc(ordered, quart / 4, "QUARTILE.EXC"))


STATS_FUNCTIONS: dict[str, Any] = {
    "MEDIAN": _fn_median,
    "MODE": _fn_mode,
    "MODE.SNGL": _fn_mode,
    "STDEV": _fn_stdev_s,
    "STDEV.S": _fn_stdev_s,
    "STDEV.P": _fn_stdev_p,
    "VAR": _fn_var_s,
    "VAR.S": _fn_var_s,
    "VAR.P": _fn_var_p,
    "LARGE": _fn_large,
    "SMALL": _fn_small,
    "GEOMEAN": _fn_geomean,
    "DEVSQ": _fn_devsq,
    "RANK": _fn_rank,
    "RANK.EQ": _fn_rank,
    "RANK.AVG": _fn_rank_avg,
    "PERCENTILE": _fn_percentile_inc,
    "PERCENTILE.INC": _fn_percentile_inc,
    "PERCENTILE.EXC": _fn_percentile_exc,
    "QUARTILE": _fn_quartile_inc,
    "QUARTILE.INC": _fn_quartile_inc,
    "QUARTILE.EXC": _fn_quartile_exc,
}
