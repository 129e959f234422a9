"""Engineering formula functions: CONVERT, ERF/ERFC and base conversion.

Base conversion uses ten-digit two's complement: a ten-digit value whose
leading digit has its high bit set is negative.
"""

from __future__ import annotations

import math
from typing import Any, NamedTuple

from sheetcalc.formulas.arguments import check_arity, integer, number, scalar, text
from sheetcalc.formulas.errors import FormulaFunctionError
from sheetcalc.formulas.values import Empty, Float, Int, String


class Unit(NamedTuple):
    category: str
    factor: float


UNITS: dict[str, Unit] = {
    # weight (grams)
    "g": Unit("weight", 1.0),
    "kg": Unit("weight", 1000.0),
    "mg": Unit("weight", 0.001),
    "lbm": Unit("weight", 453.59237),
    "ozm": Unit("weight", 28.349523125),
    # distance (meters)
    "m": Unit("distance", 1.0),
    "km": Unit("distance", 1000.0),
    "cm": Unit("distance", 0.01),
    "mm": Unit("distance", 0.001),
    "in": Unit("distance", 0.0254),
    "ft": Unit("distance", 0.3048),
    "yd": Unit("distance", 0.9144),
    "mi": Unit("distance", 1609.344),
    # time (seconds)
    "yr": Unit("time", 31536000.0),
    "day": Unit("time", 86400.0),
    "hr": Unit("time", 3600.0),
    "mn": Unit("time", 60.0),
    "sec": Unit("time", 1.0),
    # pressure (pascals)
    "Pa": Unit("pressure", 1.0),
    "atm": Unit("pressure", 101325.0),
    "mmHg": Unit("pressure", 133.322368),
    # force (newtons)
    "N": Unit("force", 1.0),
    "dyn": Unit("force", 1e-5),
    "lbf": Unit("force", 4.4482216152605),
    # energy (joules)
    "J": Unit("energy", 1.0),
    "e": Unit("energy", 1e-7),
    "cal": Unit("energy", 4.1868),
    "BTU": Unit("energy", 1055.05585),
    # power (watts)
    "W": Unit("power", 1.0),
    "HP": Unit("power", 745.69987158227),
    # magnetism (teslas)
    "T": Unit("magnetism", 1.0),
    "ga": Unit("magnetism", 0.0001),
    # volume (cubic meters)
    "l": Unit("volume", 0.001),
    "L": Unit("volume", 0.001),
    "gal": Unit("volume", 0.003785411784),
    "qt": Unit("volume", 0.000946352946),
    "pt": Unit("volume", 0.000473176473),
}

_TEMPERATURE_ALIASES = {
    "C": "C",
    "cel": "C",
    "F": "F",
    "fah": "F",
    "K": "K",
    "kel": "K",
}


def _to_kelvin(value: float, unit: str) -> float:
    if unit == "C":
        return value + 273.15
    if unit == "F":
        return (value + 459.67) * 5 / 9
    return value


def _from_kelvin(value: float, unit: str) -> float:
    if unit == "C":
        return value - 273.15
    if unit == "F":
        return value * 9 / 5 - 459.67
    return value


def _fn_convert(args: list, scope: Any) -> Float:
    """CONVERT(number, from_unit, to_unit)."""
    check_arity("CONVERT", args, 3)
    value = number(args, 0, "CONVERT")
    source = text(args, 1, "CONVERT")
    target = text(args, 2, "CONVERT")

    if source in _TEMPERATURE_ALIASES and target in _TEMPERATURE_ALIASES:
        kelvin = _to_kelvin(value, _TEMPERATURE_ALIASES[source])
        return Float(_from_kelvin(kelvin, _TEMPERATURE_ALIASES[target]))

    src, dst = UNITS.get(source), UNITS.get(target)
    for name, unit in ((source, src), (target, dst)):
        if unit is None:
            raise FormulaFunctionError("CONVERT", f"CONVERT: unknown unit {name!r}", "#N/A")
    if src.category != dst.category:
        raise FormulaFunctionError("CONVERT", f"CONVERT: cannot convert {source} to {target}", "#N/A")
    return Float(value * (src.factor / dst.factor))


# ---------------------------------------------------------------------------
# Error function
# ---------------------------------------------------------------------------


def _fn_erf(args: list, scope: Any) -> Float:
    """ERF(lower, [upper]) -- erf(lower), or erf(upper) - erf(lower)."""
    check_arity("ERF", args, 1, 2)
    lower = number(args, 0, "ERF")
    if len(args) == 1 or isinstance(scalar(args[1], "ERF"), Empty):
        return Float(math.erf(lower))
    return Float(math.erf(number(args, 1, "ERF")) - math.erf(lower))


def _fn_erf_precise(args: list, scope: Any) -> Float:
    check_arity("ERF.PRECISE", args, 1)
    return Float(math.erf(number(args, 0, "ERF.PRECISE")))


def _fn_erfc(args: list, scope: Any) -> Float:
    check_arity("ERFC", args, 1)
    return Float(math.erfc(number(args, 0, "ERFC")))


def _fn_erfc_precise(args: list, scope: Any) -> Float:
    check_arity("ERFC.PRECISE", args, 1)
    return Float(math.erfc(number(args, 0, "ERFC.PRECISE")))


# ---------------------------------------------------------------------------
# Base conversion
# ---------------------------------------------------------------------------

_DIGITS = 10
_ALPHABET = "0123456789ABCDEF"


def _limits(base: int) -> tuple[int, int]:
    half = base**_DIGITS // 2
    return -half, half - 1


def _format_base(n: int, base: int) -> str:
    if base == 2:
        return format(n, "b")
    if base == 8:
        return format(n, "o")
    return format(n, "X")


def _parse_base(args: list, func: str, base: int) -> int:
    digits = text(args, 0, func).strip()
    if len(digits) > _DIGITS:
        raise FormulaFunctionError(func, f"{func} accepts at most {_DIGITS} digits", "#NUM!")
    if not digits:
        return 0
    if set(digits.upper()) - set(_ALPHABET[:base]):
        raise FormulaFunctionError(func, f"{func}: {digits!r} is not a valid number", "#NUM!")
    n = int(digits, base)
    if len(digits) == _DIGITS and n >= base**_DIGITS // 2:
        n -= base**_DIGITS
    return n


def _render_base(n: int, args: list, func: str, base: int) -> String:
    """Digits of ``n`` in ``base``, padded to the optional places argument."""
    low, high = _limits(base)
    if n < low or n > high:
        raise FormulaFunctionError(func, f"{func} number must be between {low} and {high}", "#NUM!")
    if n < 0:
        return String(_format_base(base**_DIGITS + n, base))
    digits = _format_base(n, base)
    if len(args) == 2 and not isinstance(scalar(args[1], func), Empty):
        places = integer(args, 1, func)
        if places < 1 or places > _DIGITS or places < len(digits):
            raise FormulaFunctionError(func, f"{func} places is too small or invalid", "#NUM!")
        digits = digits.rjust(places, "0")
    return String(digits)


def _from_decimal(args: list, func: str, base: int) -> String:
    check_arity(func, args, 1, 2)
    return _render_base(math.trunc(number(args, 0, func)), args, func, base)


def _to_decimal(args: list, func: str, base: int) -> Int:
    check_arity(func, args, 1)
    return Int(_parse_base(args, func, base))


def _rebase(args: list, func: str, source: int, target: int) -> String:
    check_arity(func, args, 1, 2)
    return _render_base(_parse_base(args, func, source), args, func, target)


def _fn_dec2bin(args: list, scope: Any) -> String:
    return _from_decimal(args, "DEC2BIN", 2)


def _fn_dec2oct(args: list, scope: Any) -> String:
    return _from_decimal(args, "DEC2OCT", 8)


def _fn_dec2hex(args: list, scope: Any) -> String:
    return _from_decimal(args, "DEC2HEX", 16)


def _fn_bin2dec(args: list, scope: Any) -> Int:
    return _to_decimal(args, "BIN2DEC", 2)


def _fn_oct2dec(args: list, scope: Any) -> Int:
    return _to_decimal(args, "OCT2DEC", 8)


def _fn_hex2dec(args: list, scope: Any) -> Int:
    return _to_decimal(args, "HEX2DEC", 16)


def _fn_bin2oct(args: list, scope: Any) -> String:
    return _rebase(args, "BIN2OCT", 2, 8)


def _fn_bin2hex(args: list, scope: Any) -> String:
    return _rebase(args, "BIN2HEX", 2, 16)


def _fn_oct2bin(args: list, scope: Any) -> String:
    return _rebase(args, "OCT2BIN", 8, 2)


def _fn_oct2hex(args: list, scope: Any) -> String:
    return _rebase(args, "OCT2HEX", 8, 16)


def _fn_hex2bin(args: list, scope: Any) -> String:
    return _rebase(args, "HEX2BIN", 16, 2)


def _fn_hex2oct(args: list, scope: Any) -> String:
    return _rebase(args, "HEX2OCT", 16, 8)


ENGINEERING_FUNCTIONS: dict[str, Any] = {
    "CONVERT": _fn_convert,
    "ERF": _fn_erf,
    "ERF.PRECISE": _fn_erf_precise,
    "ERFC": _fn_erfc,
    "ERFC.PRECISE": _fn_erfc_precise,
    "DEC2BIN": _fn_dec2bin,
    "DEC2OCT": _fn_dec2oct,
    "DEC2HEX": _fn_dec2hex,
    "BIN2DEC": _fn_bin2dec,
    "OCT2DEC": _fn_oct2dec,
    "HEX2DEC": _fn_hex2dec,
    "BIN2OCT": _fn_bin2oct,
    "BIN2HEX": _fn_bin2hex,
    "OCT2BIN": _fn_oct2bin,
    "OCT2HEX": _fn_oct2hex,
    "HEX2BIN": _fn_hex2bin,
    "HEX2OCT": _fn_hex2oct,
}
