"""Argument helpers shared by the function modules.

Eager functions receive a list whose items are either a ``CellValue`` or a
``RangeValue``.  Cell references arrive as 1x1 ranges so that aggregates
treat them like ranges (text in a referenced cell is skipped, text typed
directly into the call is coerced).
"""

from __future__ import annotations

import math
from typing import Iterator, Union

from sheetcalc.formulas.coercion import (
    require_number,
    strict_number,
    to_bool,
    to_number,
    to_text,
)
from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.values import (
    Bool,
    CellValue,
    Empty,
    Error,
    RangeValue,
    String,
    settle,
)

Arg = Union[CellValue, RangeValue]


def check_arity(func: str, args: list, minimum: int, maximum: int | None = -1) -> None:
    """Raise unless ``minimum <= len(args) <= maximum``.

    ``maximum=-1`` means exactly ``minimum``; ``None`` means unbounded.
    """
    if maximum == -1:
        maximum = minimum
    n = len(args)
    if maximum is None:
        if n < minimum:
            raise FormulaFunctionError(func, f"{func} requires at least {minimum} argument(s)")
        return
    if n < minimum or n > maximum:
        if minimum == maximum:
            raise FormulaFunctionError(func, f"{func} requires exactly {minimum} argument(s)")
        raise FormulaFunctionError(func, f"{func} requires {minimum}-{maximum} arguments")


def scalar(arg: Arg, func: str) -> CellValue:
    """Collapse a 1x1 range to its value; larger ranges are rejected."""
    if isinstance(arg, RangeValue):
        if arg.rows == 1 and arg.cols == 1:
            return settle(arg.values[0])
        raise FormulaFunctionError(func, f"{func} expects a single value, not a range")
    return settle(arg)


def as_range(arg: Arg) -> RangeValue:
    if isinstance(arg, RangeValue):
        return arg
    return RangeValue.scalar(settle(arg))


def number(args: list[Arg], i: int, func: str, default: float | None = None) -> float:
    if i >= len(args):
        if default is None:
            raise FormulaFunctionError(func, f"{func}: missing argument {i + 1}")
        return default
    return require_number(scalar(args[i], func), func)


def integer(args: list[Arg], i: int, func: str, default: int | None = None) -> int:
    """Integer argument, truncated toward zero."""
    value = number(args, i, func, None if default is None else float(default))
    if not math.isfinite(value):
        raise FormulaFunctionError(func, f"{func}: argument {i + 1} must be finite", "#NUM!")
    return math.trunc(value)


def text(args: list[Arg], i: int, func: str, default: str | None = None) -> str:
    if i >= len(args):
        if default is None:
            raise FormulaFunctionError(func, f"{func}: missing argument {i + 1}")
        return default
    return to_text(scalar(args[i], func))


def boolean(args: list[Arg], i: int, func: str, default: bool | None = None) -> bool:
    if i >= len(args):
        if default is None:
            raise FormulaFunctionError(func, f"{func}: missing argument {i + 1}")
        return default
    value = scalar(args[i], func)
    if isinstance(value, Empty) and default is not None:
        return default
    return to_bool(value, func)


def iter_values(args: list[Arg]) -> Iterator[tuple[CellValue, bool]]:
    """Yield ``(value, from_range)`` for every argument, flattening ranges."""
    for arg in args:
        if isinstance(arg, RangeValue):
            for value in arg.values:
                yield settle(value), True
        else:
            yield settle(arg), False


def collect_numbers(args: list[Arg], func: str) -> list[float]:
    """Numbers for an aggregate.

    Range elements count only when they are numeric.  Values typed directly
    into the call are coerced, and non-numeric text there is an error.  The
    first error value met is raised.
    """
    numbers: list[float] = []
    for value, from_range in iter_values(args):
        if isinstance(value, Error):
            raise CellValueError(value)
        if from_range:
            n = strict_number(value)
            if n is not None:
                numbers.append(n)
            continue
        if isinstance(value, Empty):
            continue
        n = to_number(value)
        if n is None:
            raise FormulaFunctionError(func, f"{func}: cannot use text {to_text(value)!r} as a number")
        numbers.append(n)
    return numbers


def collect_numbers_a(args: list[Arg], func: str) -> list[float]:
    """Numbers for the *A aggregates: booleans are 1/0 and text is 0."""
    numbers: list[float] = []
    for value, from_range in iter_values(args):
        if isinstance(value, Error):
            raise CellValueError(value)
        if isinstance(value, Empty):
            continue
        if isinstance(value, Bool):
            numbers.append(1.0 if value.value else 0.0)
        elif isinstance(value, String):
            if from_range:
                numbers.append(0.0)
            else:
                n = to_number(value)
                if n is None:
                    raise FormulaFunctionError(func, f"{func}: cannot use text {value.text!r} as a number")
                numbers.append(n)
        else:
            numbers.append(strict_number(value))
    return numbers


def flatten_numbers(arg: Arg, func: str) -> list[float]:
    """Numeric elements of a single range-like argument, raising on errors."""
    return collect_numbers([as_range(arg)], func)
