"""Text formula functions.

Every argument is read through ``to_text``, so numbers and booleans are
accepted wherever text is expected.
"""

from __future__ import annotations

from typing import Any

from sheetcalc.formulas.arguments import boolean, check_arity, integer, iter_values, scalar, text
from sheetcalc.formulas.coercion import parse_number_text, to_text
from sheetcalc.formulas.criteria import has_wildcards, wildcard_match
from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.fn_date import parse_datetime_text
from sheetcalc.formulas.values import (
    Bool,
    DateTime,
    Empty,
    Error,
    Float,
    Int,
    String,
)

MAX_TEXT_LENGTH = 32767


def _result(value: str, func: str) -> String:
    if len(value) > MAX_TEXT_LENGTH:
        raise FormulaFunctionError(func, f"{func} result exceeds {MAX_TEXT_LENGTH} characters")
    return String(value)


def _single_text(args: list, func: str) -> str:
    check_arity(func, args, 1)
    return text(args, 0, func)


def _fn_len(args: list, scope: Any) -> Int:
    return Int(len(_single_text(args, "LEN")))


def _fn_lower(args: list, scope: Any) -> String:
    return String(_single_text(args, "LOWER").lower())


def _fn_upper(args: list, scope: Any) -> String:
    return String(_single_text(args, "UPPER").upper())


def _fn_proper(args: list, scope: Any) -> String:
    """PROPER(text) -- capitalize each letter that follows a non-letter."""
    out: list[str] = []
    previous_letter = False
    for ch in _single_text(args, "PROPER"):
        out.append(ch.lower() if previous_letter else ch.upper())
        previous_letter = ch.isalpha()
    return String("".join(out))


def _fn_trim(args: list, scope: Any) -> String:
    """TRIM(text) -- strip spaces and collapse inner runs to one space."""
    return String(" ".join(part for part in _single_text(args, "TRIM").split(" ") if part))


def _fn_clean(args: list, scope: Any) -> String:
    return String("".join(ch for ch in _single_text(args, "CLEAN") if ord(ch) >= 32))


# ---------------------------------------------------------------------------
# Joining
# ---------------------------------------------------------------------------


def _texts(args: list) -> list[str]:
    out: list[str] = []
    for value, _ in iter_values(args):
        if isinstance(value, Error):
            raise CellValueError(value)
        out.append(to_text(value))
    return out


def _fn_concat(args: list, scope: Any) -> String:
    """CONCAT(text1, ...) -- ranges are flattened."""
    return _result("".join(_texts(args)), "CONCAT")


def _fn_concatenate(args: list, scope: Any) -> String:
    """CONCATENATE(text1, ...) -- single values only."""
    check_arity("CONCATENATE", args, 1, None)
    return _result("".join(to_text(scalar(arg, "CONCATENATE")) for arg in args), "CONCATENATE")


def _fn_textjoin(args: list, scope: Any) -> String:
    """TEXTJOIN(delimiter, ignore_empty, text1, ...)."""
    check_arity("TEXTJOIN", args, 3, None)
    delimiter = text(args, 0, "TEXTJOIN")
    ignore_empty = boolean(args, 1, "TEXTJOIN")
    parts = _texts(args[2:])
    if ignore_empty:
        parts = [p for p in parts if p]
    return _result(delimiter.join(parts), "TEXTJOIN")


# ---------------------------------------------------------------------------
# Substrings
# ---------------------------------------------------------------------------


def _count(args: list, i: int, func: str, default: int | None = None) -> int:
    n = integer(args, i, func, default=default)
    if n < 0:
        raise FormulaFunctionError(func, f"{func} length must not be negative")
    return n


def _fn_left(args: list, scope: Any) -> String:
    check_arity("LEFT", args, 1, 2)
    return String(text(args, 0, "LEFT")[: _count(args, 1, "LEFT", default=1)])


def _fn_right(args: list, scope: Any) -> String:
    check_arity("RIGHT", args, 1, 2)
    value = text(args, 0, "RIGHT")
    n = _count(args, 1, "RIGHT", default=1)
    return String(value[max(len(value) - n, 0) :] if n else "")


def _fn_mid(args: list, scope: Any) -> String:
    """MID(text, start, count) -- start is 1-based."""
    check_arity("MID", args, 3)
    value = text(args, 0, "MID")
    start = integer(args, 1, "MID")
    if start < 1:
        raise FormulaFunctionError("MID", "MID start must be at least 1")
    return String(value[start - 1 : start - 1 + _count(args, 2, "MID")])


def _start(args: list, i: int, func: str, within: str) -> int:
    start = integer(args, i, func, default=1)
    if start < 1 or start > len(within) + 1:
        raise FormulaFunctionError(func, f"{func} start is out of range")
    return start - 1


def _fn_find(args: list, scope: Any) -> Int:
    """FIND(find_text, within_text, [start]) -- case-sensitive, no wildcards."""
    check_arity("FIND", args, 2, 3)
    needle = text(args, 0, "FIND")
    within = text(args, 1, "FIND")
    pos = within.find(needle, _start(args, 2, "FIND", within))
    if pos < 0:
        raise FormulaFunctionError("FIND", f"FIND: {needle!r} not found")
    return Int(pos + 1)


def _wildcard_find(pattern: str, within: str, start: int) -> int:
    for i in range(start, len(within) + 1):
        for j in range(i, len(within) + 1):
            if wildcard_match(pattern, within[i:j]):
                return i
    return -1


def _fn_search(args: list, scope: Any) -> Int:
    """SEARCH(find_text, within_text, [start]) -- case-insensitive, wildcards allowed."""
    check_arity("SEARCH", args, 2, 3)
    needle = text(args, 0, "SEARCH").casefold()
    within = text(args, 1, "SEARCH").casefold()
    start = _start(args, 2, "SEARCH", within)
    if has_wildcards(needle):
        pos = _wildcard_find(needle, within, start)
    else:
        pos = within.find(needle, start)
    if pos < 0:
        raise FormulaFunctionError("SEARCH", f"SEARCH: {needle!r} not found")
    return Int(pos + 1)


def _fn_substitute(args: list, scope: Any) -> String:
    """SUBSTITUTE(text, old_text, new_text, [instance_num])."""
    check_arity("SUBSTITUTE", args, 3, 4)
    value = text(args, 0, "SUBSTITUTE")
    old = text(args, 1, "SUBSTITUTE")
    new = text(args, 2, "SUBSTITUTE")
    if not old:
        return String(value)
    if len(args) < 4:
        return _result(value.replace(old, new), "SUBSTITUTE")
    instance = integer(args, 3, "SUBSTITUTE")
    if instance < 1:
        raise FormulaFunctionError("SUBSTITUTE", "SUBSTITUTE instance_num must be at least 1")
    pos = -1
    for _ in range(instance):
        pos = value.find(old, pos + 1)
        if pos < 0:
            return String(value)
    return _result(value[:pos] + new + value[pos + len(old) :], "SUBSTITUTE")


def _fn_replace(args: list, scope: Any) -> String:
    """REPLACE(old_text, start, count, new_text)."""
    check_arity("REPLACE", args, 4)
    value = text(args, 0, "REPLACE")
    start = integer(args, 1, "REPLACE")
    if start < 1:
        raise FormulaFunctionError("REPLACE", "REPLACE start must be at least 1")
    count = _count(args, 2, "REPLACE")
    new = text(args, 3, "REPLACE")
    return _result(value[: start - 1] + new + value[start - 1 + count :], "REPLACE")


def _fn_rept(args: list, scope: Any) -> String:
    check_arity("REPT", args, 2)
    value = text(args, 0, "REPT")
    times = _count(args, 1, "REPT")
    if len(value) * times > MAX_TEXT_LENGTH:
        raise FormulaFunctionError("REPT", f"REPT result exceeds {MAX_TEXT_LENGTH} characters")
    return String(value * times)


def _fn_exact(args: list, scope: Any) -> Bool:
    check_arity("EXACT", args, 2)
    return Bool(text(args, 0, "EXACT") == text(args, 1, "EXACT"))


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def _fn_value(args: list, scope: Any) -> Float:
    """VALUE(text) -- numeric, percent or date/time text to a number."""
    check_arity("VALUE", args, 1)
    value = scalar(args[0], "VALUE")
    if isinstance(value, (Int, Float)):
        return Float(float(value.value))
    if isinstance(value, DateTime):
        return Float(value.serial)
    if isinstance(value, Empty):
        return Float(0.0)
    raw = to_text(value)
    if isinstance(value, Bool):
        raise FormulaFunctionError("VALUE", f"VALUE: cannot convert {raw} to a number")
    n = parse_number_text(raw)
    if n is None:
        n = parse_datetime_text(raw)
    if n is None:
        raise FormulaFunctionError("VALUE", f"VALUE: cannot convert {raw!r} to a number")
    return Float(n)


def _fn_char(args: list, scope: Any) -> String:
    check_arity("CHAR", args, 1)
    code = integer(args, 0, "CHAR")
    if code < 1 or code > 255:
        raise FormulaFunctionError("CHAR", "CHAR code must be between 1 and 255")
    return String(chr(code))


def _fn_code(args: list, scope: Any) -> Int:
    value = _single_text(args, "CODE")
    if not value:
        raise FormulaFunctionError("CODE", "CODE requires non-empty text")
    return Int(ord(value[0]))


TEXT_FUNCTIONS: dict[str, Any] = {
    "LEN": _fn_len,
    "LOWER": _fn_lower,
    "UPPER": _fn_upper,
    "PROPER": _fn_proper,
    "TRIM": _fn_trim,
    "CLEAN": _fn_clean,
    "CONCAT": _fn_concat,
    "CONCATENATE": _fn_concatenate,
    "TEXTJOIN": _fn_textjoin,
    "LEFT": _fn_left,
    "RIGHT": _fn_right,
    "MID": _fn_mid,
    "FIND": _fn_find,
    "SEARCH": _fn_search,
    "SUBSTITUTE": _fn_substitute,
    "REPLACE": _fn_replace,
    "REPT": _fn_rept,
    "EXACT": _fn_exact,
    "VALUE": _fn_value,
    "CHAR": _fn_char,
    "CODE": _fn_code,
}
