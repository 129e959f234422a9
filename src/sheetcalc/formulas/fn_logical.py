"""Logical formula functions: IF, IFS, AND, OR, XOR, NOT, SWITCH, IFERROR, IFNA.

IF, IFS, AND, OR, SWITCH, IFERROR and IFNA are lazy: they receive raw
expressions and evaluate only what they need.
"""

from __future__ import annotations

from typing import Any

from sheetcalc.formulas.arguments import check_arity, iter_values, scalar
from sheetcalc.formulas.coercion import to_bool, values_equal
from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.values import (
    FALSE,
    NA,
    Bool,
    CellValue,
    Empty,
    Error,
    Float,
    Int,
    RangeValue,
    settle,
)


def _condition(value: CellValue, func: str) -> bool:
    if isinstance(value, Error):
        raise CellValueError(value)
    return to_bool(value, func)


def _fn_if(raw_args: list, scope: Any) -> CellValue | RangeValue:
    """IF(condition, then_value [, else_value]) -- lazy evaluation."""
    check_arity("IF", raw_args, 2, 3)
    if _condition(scope.scalar(raw_args[0]), "IF"):
        return scope.evaluate(raw_args[1])
    if len(raw_args) == 3:
        return scope.evaluate(raw_args[2])
    return FALSE


def _fn_ifs(raw_args: list, scope: Any) -> CellValue | RangeValue:
    """IFS(cond1, value1, cond2, value2, ...) -- first true condition wins."""
    if len(raw_args) < 2 or len(raw_args) % 2:
        raise FormulaFunctionError("IFS", "IFS requires condition/value pairs")
    for i in range(0, len(raw_args), 2):
        if _condition(scope.scalar(raw_args[i]), "IFS"):
            return scope.evaluate(raw_args[i + 1])
    return Error("IFS: no condition was true", "#N/A")


def _logical_values(value: CellValue | RangeValue, func: str) -> list[bool]:
    """Logical views of one argument; text and blanks inside ranges are skipped."""
    if isinstance(value, RangeValue):
        out: list[bool] = []
        for item, _ in iter_values([value]):
            if isinstance(item, Error):
                raise CellValueError(item)
            if isinstance(item, (Bool, Int, Float)):
                out.append(to_bool(item, func))
        return out
    value = settle(value)
    if isinstance(value, Empty):
        return []
    return [_condition(value, func)]


def _fn_and(raw_args: list, scope: Any) -> Bool:
    """AND(val1, val2, ...) -- stops at the first FALSE."""
    check_arity("AND", raw_args, 1, None)
    seen = False
    for arg in raw_args:
        for flag in _logical_values(scope.argument(arg), "AND"):
            seen = True
            if not flag:
                return Bool(False)
    if not seen:
        raise FormulaFunctionError("AND", "AND found no logical values")
    return Bool(True)


def _fn_or(raw_args: list, scope: Any) -> Bool:
    """OR(val1, val2, ...) -- stops at the first TRUE."""
    check_arity("OR", raw_args, 1, None)
    seen = False
    for arg in raw_args:
        for flag in _logical_values(scope.argument(arg), "OR"):
            seen = True
            if flag:
                return Bool(True)
    if not seen:
        raise FormulaFunctionError("OR", "OR found no logical values")
    return Bool(False)


def _fn_xor(args: list, scope: Any) -> Bool:
    """XOR(val1, val2, ...) -- TRUE when an odd number of values are TRUE."""
    check_arity("XOR", args, 1, None)
    flags: list[bool] = []
    for arg in args:
        flags.extend(_logical_values(arg, "XOR"))
    if not flags:
        raise FormulaFunctionError("XOR", "XOR found no logical values")
    return Bool(sum(flags) % 2 == 1)


def _fn_not(args: list, scope: Any) -> Bool:
    """NOT(val) -- inverts a logical value."""
    check_arity("NOT", args, 1)
    return Bool(not to_bool(scalar(args[0], "NOT"), "NOT"))


def _fn_true(args: list, scope: Any) -> Bool:
    check_arity("TRUE", args, 0)
    return Bool(True)


def _fn_false(args: list, scope: Any) -> Bool:
    check_arity("FALSE", args, 0)
    return Bool(False)


def _fn_switch(raw_args: list, scope: Any) -> CellValue | RangeValue:
    """SWITCH(expr, value1, result1, ..., [default])."""
    check_arity("SWITCH", raw_args, 3, None)
    subject = scope.scalar(raw_args[0])
    if isinstance(subject, Error):
        return subject
    has_default = len(raw_args) % 2 == 0
    last_pair = len(raw_args) - 1 if has_default else len(raw_args)
    for i in range(1, last_pair, 2):
        candidate = scope.scalar(raw_args[i])
        if isinstance(candidate, Error):
            return candidate
        if values_equal(subject, candidate):
            return scope.evaluate(raw_args[i + 1])
    if has_default:
        return scope.evaluate(raw_args[-1])
    return Error("SWITCH: no value matched", "#N/A")


def _fn_iferror(raw_args: list, scope: Any) -> CellValue | RangeValue:
    """IFERROR(value, fallback) -- fallback is evaluated only for errors."""
    check_arity("IFERROR", raw_args, 2)
    value = scope.evaluate(raw_args[0])
    if isinstance(value, Error):
        return scope.evaluate(raw_args[1])
    return value


def _fn_ifna(raw_args: list, scope: Any) -> CellValue | RangeValue:
    """IFNA(value, fallback) -- like IFERROR but only for ``#N/A``."""
    check_arity("IFNA", raw_args, 2)
    value = scope.evaluate(raw_args[0])
    if isinstance(value, Error) and value.code == NA.code:
        return scope.evaluate(raw_args[1])
    return value


LOGICAL_FUNCTIONS: dict[str, Any] = {
    "IF": _fn_if,
    "IFS": _fn_ifs,
    "AND": _fn_and,
    "OR": _fn_or,
    "XOR": _fn_xor,
    "NOT": _fn_not,
    "TRUE": _fn_true,
    "FALSE": _fn_false,
    "SWITCH": _fn_switch,
    "IFERROR": _fn_iferror,
    "IFNA": _fn_ifna,
}

LOGICAL_LAZY_FUNCTIONS: set[str] = {"IF", "IFS", "AND", "OR", "SWITCH", "IFERROR", "IFNA"}
