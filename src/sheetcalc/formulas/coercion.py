"""Canonical conversions between cell value variants.

Every conversion settles ``Formula`` values first, so a formula cell behaves
like its cached result and an unevaluated formula behaves like a blank.
Converting an ``Error`` raises ``CellValueError`` so the caller can return
that error unchanged.
"""

from __future__ import annotations

import math

from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.values import (
    Bool,
    CellValue,
    DateTime,
    Empty,
    Error,
    Float,
    Formula,
    Int,
    String,
    format_number,
    settle,
)


def parse_number_text(text: str) -> float | None:
    """Parse numeric text such as ``" 42 "``, ``"1e3"`` or ``"15%"``."""
    s = text.strip()
    if not s or "_" in s:
        return None
    scale = 1.0
    if s.endswith("%"):
        s = s[:-1].rstrip()
        scale = 0.01
    try:
        value = float(s)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value * scale


def strict_number(value: CellValue) -> float | None:
    """Float for Int, Float and DateTime only; None for everything else."""
    value = settle(value)
    if isinstance(value, (Int, Float)):
        return float(value.value)
    if isinstance(value, DateTime):
        return value.serial
    return None


def to_number(value: CellValue) -> float | None:
    """Numeric view of a value, or None for non-numeric text."""
    value = settle(value)
    if isinstance(value, Error):
        raise CellValueError(value)
    if isinstance(value, (Int, Float)):
        return float(value.value)
    if isinstance(value, DateTime):
        return value.serial
    if isinstance(value, Bool):
        return 1.0 if value.value else 0.0
    if isinstance(value, Empty):
        return 0.0
    return parse_number_text(value.text)


def require_number(value: CellValue, func: str) -> float:
    number = to_number(value)
    if number is None:
        raise FormulaFunctionError(func, f"{func}: expected a number, got {to_text(value)!r}")
    return number


def to_text(value: CellValue) -> str:
    value = settle(value)
    if isinstance(value, Error):
        raise CellValueError(value)
    if isinstance(value, Empty):
        return ""
    if isinstance(value, String):
        return value.text
    if isinstance(value, Int):
        return str(value.value)
    if isinstance(value, Float):
        return format_number(value.value)
    if isinstance(value, DateTime):
        return format_number(value.serial)
    return "TRUE" if value.value else "FALSE"


def to_bool(value: CellValue, func: str = "") -> bool:
    value = settle(value)
    if isinstance(value, Error):
        raise CellValueError(value)
    if isinstance(value, Bool):
        return value.value
    if isinstance(value, (Int, Float)):
        return value.value != 0
    if isinstance(value, DateTime):
        return value.serial != 0
    if isinstance(value, Empty):
        return False
    folded = value.text.strip().upper()
    if folded == "TRUE":
        return True
    if folded == "FALSE":
        return False
    raise FormulaFunctionError(func or "BOOL", f"Cannot use {value.text!r} as a logical value")


def is_blank(value: CellValue) -> bool:
    if isinstance(value, Formula) and value.cached is None:
        return True
    value = settle(value)
    return isinstance(value, Empty) or (isinstance(value, String) and value.text == "")


def values_equal(a: CellValue, b: CellValue) -> bool:
    """Numeric equality when both sides are numbers, else case-insensitive text."""
    a, b = settle(a), settle(b)
    if isinstance(a, Error) or isinstance(b, Error):
        return a == b
    na, nb = strict_number(a), strict_number(b)
    if na is not None and nb is not None:
        return na == nb
    return to_text(a).casefold() == to_text(b).casefold()


def _type_rank(value: CellValue) -> int:
    if isinstance(value, String):
        return 1
    if isinstance(value, Bool):
        return 2
    return 0


def _blank_like(other: CellValue) -> CellValue:
    if isinstance(other, String):
        return String("")
    if isinstance(other, Bool):
        return Bool(False)
    return Int(0)


def compare_values(a: CellValue, b: CellValue) -> int:
    """Three-way comparison used by the comparison operators.

    Numbers sort before text, text before booleans.  Text compares
    case-insensitively.  A blank takes the type of the other side.
    """
    a, b = settle(a), settle(b)
    for side in (a, b):
        if isinstance(side, Error):
            raise CellValueError(side)
    if isinstance(a, Empty) and isinstance(b, Empty):
        return 0
    if isinstance(a, Empty):
        a = _blank_like(b)
    if isinstance(b, Empty):
        b = _blank_like(a)

    ra, rb = _type_rank(a), _type_rank(b)
    if ra != rb:
        return -1 if ra < rb else 1
    if ra == 0:
        left, right = strict_number(a), strict_number(b)
    elif ra == 1:
        left, right = a.text.casefold(), b.text.casefold()
    else:
        left, right = a.value, b.value
    if left == right:
        return 0
    return -1 if left < right else 1
