"""Math formula functions: rounding, logarithms, trigonometry, combinatorics and bitwise operations."""

from __future__ import annotations

import decimal
import math
from typing import Any

from sheetcalc.formulas.arguments import check_arity, collect_numbers, integer, number, scalar
from sheetcalc.formulas.coercion import require_number
from sheetcalc.formulas.errors import FormulaFunctionError
from sheetcalc.formulas.values import DIV0, NUM, CellValue, Float, Int, number_result

MAX_BITWISE = 2**48 - 1
MAX_SHIFT = 53


def power_value(base: float, exponent: float) -> CellValue:
    """``base ^ exponent`` as a Float, or the spreadsheet error it produces."""
    if base == 0 and exponent == 0:
        return NUM
    if base == 0 and exponent < 0:
        return DIV0
    if base < 0 and exponent != math.floor(exponent):
        return NUM
    try:
        result = math.pow(base, exponent)
    except OverflowError:
        return NUM
    if not math.isfinite(result):
        return NUM
    return Float(result)


def _num_error(func: str, message: str) -> FormulaFunctionError:
    return FormulaFunctionError(func, message, "#NUM!")


def _unary(args: list, func: str) -> float:
    check_arity(func, args, 1)
    return number(args, 0, func)


# ---------------------------------------------------------------------------
# Basic arithmetic
# ---------------------------------------------------------------------------


def _fn_int(args: list, scope: Any) -> Float:
    """INT(x) -- rounds down toward negative infinity."""
    return Float(float(math.floor(_unary(args, "INT"))))


def _fn_abs(args: list, scope: Any) -> Int | Float:
    check_arity("ABS", args, 1)
    value = scalar(args[0], "ABS")
    if isinstance(value, Int):
        return Int(abs(value.value))
    return Float(abs(require_number(value, "ABS")))


def _fn_sign(args: list, scope: Any) -> Int:
    x = _unary(args, "SIGN")
    return Int((x > 0) - (x < 0))


def _fn_mod(args: list, scope: Any) -> Float:
    """MOD(number, divisor) -- the result takes the divisor's sign."""
    check_arity("MOD", args, 2)
    n = number(args, 0, "MOD")
    d = number(args, 1, "MOD")
    if d == 0:
        raise FormulaFunctionError("MOD", "MOD divisor must not be zero", "#DIV/0!")
    return Float(n - d * math.floor(n / d))


def _fn_power(args: list, scope: Any) -> CellValue:
    check_arity("POWER", args, 2)
    return power_value(number(args, 0, "POWER"), number(args, 1, "POWER"))


def _fn_sqrt(args: list, scope: Any) -> Float:
    x = _unary(args, "SQRT")
    if x < 0:
        raise _num_error("SQRT", "SQRT argument must not be negative")
    return Float(math.sqrt(x))


def _fn_sqrtpi(args: list, scope: Any) -> Float:
    x = _unary(args, "SQRTPI")
    if x < 0:
        raise _num_error("SQRTPI", "SQRTPI argument must not be negative")
    return Float(math.sqrt(x * math.pi))


def _fn_pi(args: list, scope: Any) -> Float:
    check_arity("PI", args, 0)
    return Float(math.pi)


def _fn_exp(args: list, scope: Any) -> Float:
    return Float(math.exp(_unary(args, "EXP")))


def _fn_ln(args: list, scope: Any) -> Float:
    x = _unary(args, "LN")
    if x <= 0:
        raise _num_error("LN", "LN argument must be positive")
    return Float(math.log(x))


def _fn_log10(args: list, scope: Any) -> Float:
    x = _unary(args, "LOG10")
    if x <= 0:
        raise _num_error("LOG10", "LOG10 argument must be positive")
    return Float(math.log10(x))


def _fn_log(args: list, scope: Any) -> Float:
    """LOG(number, [base]) -- base defaults to 10."""
    check_arity("LOG", args, 1, 2)
    x = number(args, 0, "LOG")
    base = number(args, 1, "LOG", default=10.0)
    if x <= 0 or base <= 0:
        raise _num_error("LOG", "LOG arguments must be positive")
    if base == 1:
        raise FormulaFunctionError("LOG", "LOG base must not be 1", "#DIV/0!")
    if base == 10:
        return Float(math.log10(x))
    return Float(math.log(x) / math.log(base))


def _fn_delta(args: list, scope: Any) -> Int:
    """DELTA(a, [b]) -- 1 when the numbers are equal."""
    check_arity("DELTA", args, 1, 2)
    return Int(1 if number(args, 0, "DELTA") == number(args, 1, "DELTA", default=0.0) else 0)


def _fn_gestep(args: list, scope: Any) -> Int:
    """GESTEP(number, [step]) -- 1 when number >= step."""
    check_arity("GESTEP", args, 1, 2)
    return Int(1 if number(args, 0, "GESTEP") >= number(args, 1, "GESTEP", default=0.0) else 0)


# ---------------------------------------------------------------------------
# Rounding (half away from zero)
# ---------------------------------------------------------------------------


def _round(value: float, digits: int, mode: str) -> float:
    if not math.isfinite(value) or digits > 15:
        return value
    if digits < -308:
        return 0.0
    quantum = decimal.Decimal(1).scaleb(-digits)
    with decimal.localcontext() as ctx:
        ctx.prec = 400
        rounded = decimal.Decimal(repr(value)).quantize(quantum, rounding=mode)
    return float(rounded)


def _rounding(args: list, func: str, mode: str, default_digits: int | None = None) -> Float:
    check_arity(func, args, 1 if default_digits is not None else 2, 2)
    value = number(args, 0, func)
    digits = integer(args, 1, func, default=default_digits)
    return Float(_round(value, digits, mode))


def _fn_round(args: list, scope: Any) -> Float:
    """ROUND(number, digits)."""
    return _rounding(args, "ROUND", decimal.ROUND_HALF_UP)


def _fn_roundup(args: list, scope: Any) -> Float:
    return _rounding(args, "ROUNDUP", decimal.ROUND_UP)


def _fn_rounddown(args: list, scope: Any) -> Float:
    return _rounding(args, "ROUNDDOWN", decimal.ROUND_DOWN)


def _fn_trunc(args: list, scope: Any) -> Float:
    """TRUNC(number, [digits])."""
    return _rounding(args, "TRUNC", decimal.ROUND_DOWN, default_digits=0)


def _snap(quotient: float) -> float:
    """Pull a quotient that is a whole number up to float noise onto it."""
    nearest = round(quotient)
    if abs(quotient - nearest) < 1e-9 * max(1.0, abs(quotient)):
        return float(nearest)
    return quotient


def _tidy(value: float) -> float:
    return float(format(value, ".15g"))


def _fn_ceiling(args: list, scope: Any) -> Float:
    """CEILING(number, [significance]) -- up to a multiple of significance."""
    check_arity("CEILING", args, 1, 2)
    x = number(args, 0, "CEILING")
    sig = number(args, 1, "CEILING", default=1.0)
    if sig == 0:
        return Float(0.0)
    if x > 0 and sig < 0:
        raise _num_error("CEILING", "CEILING significance must be positive for a positive number")
    return Float(_tidy(math.ceil(_snap(x / sig)) * sig))


def _fn_floor(args: list, scope: Any) -> Float:
    """FLOOR(number, [significance]) -- down to a multiple of significance."""
    check_arity("FLOOR", args, 1, 2)
    x = number(args, 0, "FLOOR")
    sig = number(args, 1, "FLOOR", default=1.0)
    if sig == 0:
        raise FormulaFunctionError("FLOOR", "FLOOR significance must not be zero", "#DIV/0!")
    if x > 0 and sig < 0:
        raise _num_error("FLOOR", "FLOOR significance must be positive for a positive number")
    return Float(_tidy(math.floor(_snap(x / sig)) * sig))


def _math_rounding(args: list, func: str, step: Any, negative_step: Any) -> Float:
    """Shared body of CEILING.MATH and FLOOR.MATH; a non-zero mode flips negatives."""
    check_arity(func, args, 1, 3)
    x = number(args, 0, func)
    sig = abs(number(args, 1, func, default=1.0))
    mode = number(args, 2, func, default=0.0)
    if sig == 0:
        return Float(0.0)
    if x < 0 and mode != 0:
        step = negative_step
    return Float(_tidy(step(_snap(x / sig)) * sig))


def _fn_ceiling_math(args: list, scope: Any) -> Float:
    """CEILING.MATH(number, [significance], [mode]) -- mode rounds negatives away from zero."""
    return _math_rounding(args, "CEILING.MATH", math.ceil, math.floor)


def _fn_floor_math(args: list, scope: Any) -> Float:
    """FLOOR.MATH(number, [significance], [mode]) -- mode rounds negatives toward zero."""
    return _math_rounding(args, "FLOOR.MATH", math.floor, math.ceil)


def _fn_mround(args: list, scope: Any) -> Float:
    """MROUND(number, multiple) -- nearest multiple, halves away from zero."""
    check_arity("MROUND", args, 2)
    x = number(args, 0, "MROUND")
    multiple = number(args, 1, "MROUND")
    if multiple == 0:
        return Float(0.0)
    if x != 0 and (x > 0) != (multiple > 0):
        raise _num_error("MROUND", "MROUND number and multiple must have the same sign")
    count = _round(_snap(x / multiple), 0, decimal.ROUND_HALF_UP)
    return Float(_tidy(count * multiple))


def _away_from_zero(x: float) -> int:
    return math.ceil(x) if x >= 0 else math.floor(x)


def _fn_even(args: list, scope: Any) -> Int | Float:
    """EVEN(number) -- away from zero to the next even integer."""
    n = _away_from_zero(_unary(args, "EVEN"))
    if n % 2:
        n += 1 if n > 0 else -1
    return number_result(n)


def _fn_odd(args: list, scope: Any) -> Int | Float:
    """ODD(number) -- away from zero to the next odd integer."""
    x = _unary(args, "ODD")
    n = _away_from_zero(x)
    if n % 2 == 0:
        n += -1 if x < 0 else 1
    return number_result(n)


def _fn_quotient(args: list, scope: Any) -> Int | Float:
    """QUOTIENT(numerator, denominator) -- integer part of the division."""
    check_arity("QUOTIENT", args, 2)
    numerator = number(args, 0, "QUOTIENT")
    denominator = number(args, 1, "QUOTIENT")
    if denominator == 0:
        raise FormulaFunctionError("QUOTIENT", "QUOTIENT denominator must not be zero", "#DIV/0!")
    return number_result(math.trunc(numerator / denominator))


# ---------------------------------------------------------------------------
# Trigonometry
# ---------------------------------------------------------------------------


def _trig(args: list, func: str, fn: Any) -> Float:
    x = _unary(args, func)
    try:
        result = fn(x)
    except ValueError:
        raise _num_error(func, f"{func} argument is out of range") from None
    if not math.isfinite(result):
        raise _num_error(func, f"{func} result is not a finite number")
    return Float(result)


def _fn_sin(args: list, scope: Any) -> Float:
    return _trig(args, "SIN", math.sin)


def _fn_cos(args: list, scope: Any) -> Float:
    return _trig(args, "COS", math.cos)


def _fn_tan(args: list, scope: Any) -> Float:
    return _trig(args, "TAN", math.tan)


def _fn_asin(args: list, scope: Any) -> Float:
    return _trig(args, "ASIN", math.asin)


def _fn_acos(args: list, scope: Any) -> Float:
    return _trig(args, "ACOS", math.acos)


def _fn_atan(args: list, scope: Any) -> Float:
    return _trig(args, "ATAN", math.atan)


def _fn_sinh(args: list, scope: Any) -> Float:
    return _trig(args, "SINH", math.sinh)


def _fn_cosh(args: list, scope: Any) -> Float:
    return _trig(args, "COSH", math.cosh)


def _fn_tanh(args: list, scope: Any) -> Float:
    return _trig(args, "TANH", math.tanh)


def _fn_degrees(args: list, scope: Any) -> Float:
    return _trig(args, "DEGREES", math.degrees)


def _fn_radians(args: list, scope: Any) -> Float:
    return _trig(args, "RADIANS", math.radians)


def _fn_atan2(args: list, scope: Any) -> Float:
    """ATAN2(x, y) -- angle of the point (x, y); note x comes first."""
    check_arity("ATAN2", args, 2)
    x = number(args, 0, "ATAN2")
    y = number(args, 1, "ATAN2")
    if x == 0 and y == 0:
        raise FormulaFunctionError("ATAN2", "ATAN2 of the origin is undefined", "#DIV/0!")
    return Float(math.atan2(y, x))


# ---------------------------------------------------------------------------
# Combinatorics
# ---------------------------------------------------------------------------


def _whole(value: int) -> Int | Float:
    if abs(value) < 2**63:
        return Int(value)
    return Float(float(value))


def _non_negative(args: list, i: int, func: str) -> int:
    value = number(args, i, func)
    if value < 0:
        raise _num_error(func, f"{func} arguments must not be negative")
    return math.trunc(value)


def _fn_fact(args: list, scope: Any) -> Int | Float:
    """FACT(number) -- factorial of the truncated number, up to 170."""
    check_arity("FACT", args, 1)
    n = _non_negative(args, 0, "FACT")
    if n > 170:
        raise _num_error("FACT", "FACT argument must not exceed 170")
    return _whole(math.factorial(n))


def _fn_combin(args: list, scope: Any) -> Int | Float:
    """COMBIN(n, k) -- ways to choose k items from n."""
    check_arity("COMBIN", args, 2)
    n = _non_negative(args, 0, "COMBIN")
    k = _non_negative(args, 1, "COMBIN")
    if k > n:
        raise _num_error("COMBIN", "COMBIN k must not exceed n")
    return _whole(math.comb(n, k))


def _fn_permut(args: list, scope: Any) -> Int | Float:
    """PERMUT(n, k) -- ordered selections of k items from n."""
    check_arity("PERMUT", args, 2)
    n = _non_negative(args, 0, "PERMUT")
    k = _non_negative(args, 1, "PERMUT")
    if k > n:
        raise _num_error("PERMUT", "PERMUT k must not exceed n")
    return _whole(math.perm(n, k))


def _integers(args: list, func: str) -> list[int]:
    numbers = collect_numbers(args, func)
    if any(n < 0 for n in numbers):
        raise _num_error(func, f"{func} arguments must not be negative")
    return [math.trunc(n) for n in numbers]


def _fn_gcd(args: list, scope: Any) -> Int:
    check_arity("GCD", args, 1, None)
    return Int(math.gcd(*_integers(args, "GCD")))


def _fn_lcm(args: list, scope: Any) -> Int | Float:
    check_arity("LCM", args, 1, None)
    numbers = _integers(args, "LCM")
    if not numbers:
        return Int(0)
    return _whole(math.lcm(*numbers))


# ---------------------------------------------------------------------------
# Bitwise
# ---------------------------------------------------------------------------


def _bit_operand(args: list, i: int, func: str) -> int:
    value = number(args, i, func)
    if value < 0 or value > MAX_BITWISE or value != math.floor(value):
        raise _num_error(func, f"{func} arguments must be integers between 0 and 2^48-1")
    return int(value)


def _bit_result(value: int, func: str) -> Int:
    if value > MAX_BITWISE:
        raise _num_error(func, f"{func} result exceeds 2^48-1")
    return Int(value)


def _shift_amount(args: list, i: int, func: str) -> int:
    value = number(args, i, func)
    if abs(value) > MAX_SHIFT or value != math.floor(value):
        raise _num_error(func, f"{func} shift must be an integer between -53 and 53")
    return int(value)


def _fn_bitand(args: list, scope: Any) -> Int:
    check_arity("BITAND", args, 2)
    return Int(_bit_operand(args, 0, "BITAND") & _bit_operand(args, 1, "BITAND"))


def _fn_bitor(args: list, scope: Any) -> Int:
    check_arity("BITOR", args, 2)
    return Int(_bit_operand(args, 0, "BITOR") | _bit_operand(args, 1, "BITOR"))


def _fn_bitxor(args: list, scope: Any) -> Int:
    check_arity("BITXOR", args, 2)
    return Int(_bit_operand(args, 0, "BITXOR") ^ _bit_operand(args, 1, "BITXOR"))


def _shift(value: int, amount: int) -> int:
    return value << amount if amount >= 0 else value >> -amount


def _fn_bitlshift(args: list, scope: Any) -> Int:
    """BITLSHIFT(number, shift) -- a negative shift moves right."""
    check_arity("BITLSHIFT", args, 2)
    value = _bit_operand(args, 0, "BITLSHIFT")
    return _bit_result(_shift(value, _shift_amount(args, 1, "BITLSHIFT")), "BITLSHIFT")


def _fn_bitrshift(args: list, scope: Any) -> Int:
    """BITRSHIFT(number, shift) -- a negative shift moves left."""
    check_arity("BITRSHIFT", args, 2)
    value = _bit_operand(args, 0, "BITRSHIFT")
    return _bit_result(_shift(value, -_shift_amount(args, 1, "BITRSHIFT")), "BITRSHIFT")


MATH_FUNCTIONS: dict[str, Any] = {
    "INT": _fn_int,
    "ABS": _fn_abs,
    "SIGN": _fn_sign,
    "MOD": _fn_mod,
    "POWER": _fn_power,
    "SQRT": _fn_sqrt,
    "SQRTPI": _fn_sqrtpi,
    "PI": _fn_pi,
    "EXP": _fn_exp,
    "LN": _fn_ln,
    "LOG": _fn_log,
    "LOG10": _fn_log10,
    "DELTA": _fn_delta,
    "GESTEP": _fn_gestep,
    "ROUND": _fn_round,
    "ROUNDUP": _fn_roundup,
    "ROUNDDOWN": _fn_rounddown,
    "TRUNC": _fn_trunc,
    "CEILING": _fn_ceiling,
    "CEILING.MATH": _fn_ceiling_math,
    "FLOOR": _fn_floor,
    "FLOOR.MATH": _fn_floor_math,
    "MROUND": _fn_mround,
    "EVEN": _fn_even,
    "ODD": _fn_odd,
    "QUOTIENT": _fn_quotient,
    "SIN": _fn_sin,
    "COS": _fn_cos,
    "TAN": _fn_tan,
    "ASIN": _fn_asin,
    "ACOS": _fn_acos,
    "ATAN": _fn_atan,
    "ATAN2": _fn_atan2,
    "SINH": _fn_sinh,
    "COSH": _fn_cosh,
    "TANH": _fn_tanh,
    "DEGREES": _fn_degrees,
    "RADIANS": _fn_radians,
    "FACT": _fn_fact,
    "COMBIN": _fn_combin,
    "PERMUT": _fn_permut,
    "GCD": _fn_gcd,
    "LCM": _fn_lcm,
    "BITAND": _fn_bitand,
    "BITOR": _fn_bitor,
    "BITXOR": _fn_bitxor,
    "BITLSHIFT": _fn_bitlshift,
    "BITRSHIFT": _fn_bitrshift,
}
