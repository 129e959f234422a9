"""Information and error functions: ISERROR, ISNA, ISBLANK, TYPE, NA, ...

These functions observe error values instead of propagating them, so they
are registered as error-tolerant with the dispatcher.
"""

from __future__ import annotations

import math
from typing import Any

from sheetcalc.formulas.arguments import check_arity, number, scalar
from sheetcalc.formulas.values import (
    ERROR_CODES,
    NA,
    Bool,
    DateTime,
    Empty,
    Error,
    Float,
    Int,
    RangeValue,
    String,
    settle,
)


def _single(args: list, func: str) -> Any:
    check_arity(func, args, 1)
    return scalar(args[0], func)


def _fn_iserror(args: list, scope: Any) -> Bool:
    """ISERROR(value) -- TRUE for any error value."""
    return Bool(isinstance(_single(args, "ISERROR"), Error))


def _fn_iserr(args: list, scope: Any) -> Bool:
    """ISERR(value) -- TRUE for any error other than ``#N/A``."""
    value = _single(args, "ISERR")
    return Bool(isinstance(value, Error) and value.code != NA.code)


def _fn_isna(args: list, scope: Any) -> Bool:
    value = _single(args, "ISNA")
    return Bool(isinstance(value, Error) and value.code == NA.code)


def _fn_isblank(args: list, scope: Any) -> Bool:
    check_arity("ISBLANK", args, 1)
    arg = args[0]
    if isinstance(arg, RangeValue):
        if arg.rows != 1 or arg.cols != 1:
            return Bool(False)
        arg = arg.values[0]
    return Bool(isinstance(settle(arg), Empty))


def _fn_isnumber(args: list, scope: Any) -> Bool:
    return Bool(isinstance(_single(args, "ISNUMBER"), (Int, Float, DateTime)))


def _fn_istext(args: list, scope: Any) -> Bool:
    return Bool(isinstance(_single(args, "ISTEXT"), String))


def _fn_isnontext(args: list, scope: Any) -> Bool:
    return Bool(not isinstance(_single(args, "ISNONTEXT"), String))


def _fn_islogical(args: list, scope: Any) -> Bool:
    return Bool(isinstance(_single(args, "ISLOGICAL"), Bool))


def _parity(args: list, func: str) -> int:
    check_arity(func, args, 1)
    return math.trunc(number(args, 0, func)) % 2


def _fn_iseven(args: list, scope: Any) -> Bool:
    return Bool(_parity(args, "ISEVEN") == 0)


def _fn_isodd(args: list, scope: Any) -> Bool:
    return Bool(_parity(args, "ISODD") == 1)


def _fn_na(args: list, scope: Any) -> Error:
    check_arity("NA", args, 0)
    return NA


def _fn_n(args: list, scope: Any) -> Any:
    """N(value) -- numbers pass through, TRUE is 1, everything else 0."""
    value = _single(args, "N")
    if isinstance(value, Error):
        return value
    if isinstance(value, (Int, Float)):
        return value
    if isinstance(value, DateTime):
        return Float(value.serial)
    if isinstance(value, Bool):
        return Int(1 if value.value else 0)
    return Int(0)


def _fn_t(args: list, scope: Any) -> Any:
    """T(value) -- text passes through, everything else is empty text."""
    value = _single(args, "T")
    if isinstance(value, Error):
        return value
    if isinstance(value, String):
        return value
    return String("")


def _fn_type(args: list, scope: Any) -> Int:
    """TYPE(value) -- 1 number, 2 text, 4 logical, 16 error, 64 array."""
    check_arity("TYPE", args, 1)
    arg = args[0]
    if isinstance(arg, RangeValue) and (arg.rows > 1 or arg.cols > 1):
        return Int(64)
    value = scalar(arg, "TYPE")
    if isinstance(value, String):
        return Int(2)
    if isinstance(value, Bool):
        return Int(4)
    if isinstance(value, Error):
        return Int(16)
    return Int(1)


def _fn_error_type(args: list, scope: Any) -> Any:
    """ERROR.TYPE(value) -- position of the error code, ``#N/A`` for non-errors."""
    value = _single(args, "ERROR.TYPE")
    if not isinstance(value, Error):
        return NA
    return Int(ERROR_CODES.index(value.code) + 1)


ERROR_FUNCTIONS: dict[str, Any] = {
    "ISERROR": _fn_iserror,
    "ISERR": _fn_iserr,
    "ISNA": _fn_isna,
    "ISBLANK": _fn_isblank,
    "ISNUMBER": _fn_isnumber,
    "ISTEXT": _fn_istext,
    "ISNONTEXT": _fn_isnontext,
    "ISLOGICAL": _fn_islogical,
    "ISEVEN": _fn_iseven,
    "ISODD": _fn_isodd,
    "NA": _fn_na,
    "N": _fn_n,
    "T": _fn_t,
    "TYPE": _fn_type,
    "ERROR.TYPE": _fn_error_type,
}

ERROR_TOLERANT_FUNCTIONS: set[str] = {
    "ISERROR",
    "ISERR",
    "ISNA",
    "ISBLANK",
    "ISNUMBER",
    "ISTEXT",
    "ISNONTEXT",
    "ISLOGICAL",
    "N",
    "T",
    "TYPE",
    "ERROR.TYPE",
}
