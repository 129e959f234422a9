"""Criteria strings for the *IF/*IFS aggregates.

A criteria is an optional comparison prefix (``=``, ``<>``, ``>``, ``>=``,
``<``, ``<=``) followed by an operand that is numeric when it parses as a
number and text otherwise.  Text equality supports ``*`` and ``?``
wildcards.
"""

from __future__ import annotations

from dataclasses import dataclass

from sheetcalc.formulas.coercion import parse_number_text, strict_number, to_text
from sheetcalc.formulas.values import (
    Bool,
    CellValue,
    DateTime,
    Error,
    Float,
    Int,
    String,
    settle,
)

_OPERATORS = ("<>", ">=", "<=", "=", ">", "<")


@dataclass(frozen=True)
class Criteria:
    op: str
    operand: float | str


def parse_criteria(text: str) -> Criteria:
    """Split a criteria string into operator and operand."""
    op = "="
    for candidate in _OPERATORS:
        if text.startswith(candidate):
            op = candidate
            text = text[len(candidate):]
            break
    number = parse_number_text(text)
    if number is not None:
        return Criteria(op, number)
    return Criteria(op, text)


def criteria_from_value(value: CellValue) -> Criteria:
    """Criteria for a criteria argument: numbers match by equality, text is parsed."""
    value = settle(value)
    if isinstance(value, (Int, Float, DateTime)):
        return Criteria("=", strict_number(value))
    if isinstance(value, Bool):
        return Criteria("=", "TRUE" if value.value else "FALSE")
    return parse_criteria(to_text(value))


def has_wildcards(pattern: str) -> bool:
    return "*" in pattern or "?" in pattern


def wildcard_match(pattern: str, text: str) -> bool:
    """Match *text* against *pattern* where ``*`` is any run and ``?`` one char.

    Case-sensitive; callers fold case first when they need to.
    """
    m, n = len(pattern), len(text)
    # dp[i][j]: pattern[:i] matches text[:j]
    dp = [[False] * (n + 1) for _ in range(m + 1)]
    dp[0][0] = True
    for i in range(1, m + 1):
        if pattern[i - 1] == "*":
            dp[i][0] = dp[i - 1][0]
    for i in range(1, m + 1):
        p = pattern[i - 1]
        for j in range(1, n + 1):
            if p == "*":
                dp[i][j] = dp[i - 1][j] or dp[i][j - 1]
            elif p == "?" or p == text[j - 1]:
                dp[i][j] = dp[i - 1][j - 1]
    return dp[m][n]


def text_equals(pattern: str, text: str) -> bool:
    """Case-insensitive equality, using wildcards when the pattern has any."""
    pattern, text = pattern.casefold(), text.casefold()
    if has_wildcards(pattern):
        return wildcard_match(pattern, text)
    return pattern == text


def _compare(op: str, left: float | str, right: float | str) -> bool:
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    if op == "<":
        return left < right
    return left <= right


def matches_criteria(value: CellValue, criteria: Criteria) -> bool:
    """Whether a candidate cell value satisfies *criteria*.

    Error candidates never match.
    """
    value = settle(value)
    if isinstance(value, Error):
        return False
    op, operand = criteria.op, criteria.operand

    if isinstance(operand, float):
        number = strict_number(value)
        if number is None and isinstance(value, String) and op in ("=", "<>"):
            number = parse_number_text(value.text)
        if op == "=":
            return number is not None and number == operand
        if op == "<>":
            return number is None or number != operand
        return number is not None and _compare(op, number, operand)

    if op == "=":
        return text_equals(operand, to_text(value))
    if op == "<>":
        return not text_equals(operand, to_text(value))
    if not isinstance(value, String):
        return False
    return _compare(op, value.text, operand)
