"""Financial formula functions: annuities, cash-flow returns and depreciation."""

from __future__ import annotations

import math
from typing import Any, Callable

from sheetcalc.formulas.arguments import (
    as_range,
    check_arity,
    collect_numbers,
    flatten_numbers,
    number,
)
from sheetcalc.formulas.coercion import strict_number
from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.values import Error, Float, settle

_ZERO_RATE = 1e-10
_MAX_ITER = 100
_TOLERANCE = 1e-10
_FLAT_DERIVATIVE = 1e-12
_STEP = 1e-5


def _finite(value: float, func: str) -> Float:
    if not math.isfinite(value):
        raise FormulaFunctionError(func, f"{func} result is not a finite number", "#NUM!")
    return Float(value)


def _real(func: str, compute: Callable[..., float], *args: float) -> Float:
    """Run an annuity formula, mapping a complex-valued power to ``#NUM!``."""
    try:
        value = compute(*args)
    except ValueError:
        raise FormulaFunctionError(func, f"{func} has no real-valued result", "#NUM!") from None
    return _finite(value, func)


def _derivative(f: Callable[[float], float], x: float) -> float:
    return (f(x + _STEP) - f(x - _STEP)) / (2 * _STEP)


def _newton(f: Callable[[float], float], guess: float) -> float | None:
    """Newton-Raphson root of *f* from *guess*, or None when it fails."""
    rate = guess
    for _ in range(_MAX_ITER):
        try:
            value = f(rate)
            if abs(value) < _TOLERANCE:
                return rate
            slope = _derivative(f, rate)
        except (ZeroDivisionError, OverflowError, ValueError):
            return None
        if abs(slope) < _FLAT_DERIVATIVE or not math.isfinite(slope):
            return None
        new_rate = rate - value / slope
        if not math.isfinite(new_rate):
            return None
        if abs(new_rate - rate) < _TOLERANCE:
            return new_rate
        rate = new_rate
    return None


# ---------------------------------------------------------------------------
# Annuities
# ---------------------------------------------------------------------------


def _annuity_args(args: list, func: str, first: int) -> tuple[float, float, float, float, float]:
    values = [number(args, i, func) for i in range(first)]
    fv_or_pv = number(args, first, func, default=0.0)
    kind = 1.0 if number(args, first + 1, func, default=0.0) != 0 else 0.0
    return values[0], values[1], values[2], fv_or_pv, kind


def _present_value(rate: float, nper: float, pmt: float, fv: float, kind: float) -> float:
    if abs(rate) < _ZERO_RATE:
        return -(pmt * nper + fv)
    factor = math.pow(1 + rate, -nper)
    return -(pmt * (1 + rate * kind) * (1 - factor) / rate + fv * factor)


def _future_value(rate: float, nper: float, pmt: float, pv: float, kind: float) -> float:
    if abs(rate) < _ZERO_RATE:
        return -(pv + pmt * nper)
    factor = math.pow(1 + rate, nper)
    return -(pv * factor + pmt * (1 + rate * kind) * (factor - 1) / rate)


def _fn_pv(args: list, scope: Any) -> Float:
    """PV(rate, nper, pmt, [fv], [type])."""
    check_arity("PV", args, 3, 5)
    return _real("PV", _present_value, *_annuity_args(args, "PV", 3))


def _fn_fv(args: list, scope: Any) -> Float:
    """FV(rate, nper, pmt, [pv], [type])."""
    check_arity("FV", args, 3, 5)
    return _real("FV", _future_value, *_annuity_args(args, "FV", 3))


def _payment(rate: float, nper: float, pv: float, fv: float, kind: float) -> float:
    if abs(rate) < _ZERO_RATE:
        return -(pv + fv) / nper
    growth = math.pow(1 + rate, nper)
    return -rate * (pv * growth + fv) / ((1 + rate * kind) * (growth - 1))


def _fn_pmt(args: list, scope: Any) -> Float:
    """PMT(rate, nper, pv, [fv], [type])."""
    check_arity("PMT", args, 3, 5)
    rate, nper, pv, fv, kind = _annuity_args(args, "PMT", 3)
    if nper == 0:
        raise FormulaFunctionError("PMT", "PMT nper must not be zero", "#NUM!")
    return _real("PMT", _payment, rate, nper, pv, fv, kind)


def _period_split(args: list, func: str) -> tuple[float, float]:
    """(payment, interest part) for period ``per`` of IPMT/PPMT arguments."""
    check_arity(func, args, 4, 6)
    rate, per, nper, pv = (number(args, i, func) for i in range(4))
    fv = number(args, 4, func, default=0.0)
    kind = 1.0 if number(args, 5, func, default=0.0) != 0 else 0.0
    if per < 1 or per > nper:
        raise FormulaFunctionError(func, f"{func} per must be between 1 and nper", "#NUM!")
    payment = _real(func, _payment, rate, nper, pv, fv, kind).value
    if kind and per == 1:
        return payment, 0.0
    interest = _real(func, _future_value, rate, per - 1, payment, pv, kind).value * rate
    if kind:
        interest /= 1 + rate
    return payment, interest


def _fn_ipmt(args: list, scope: Any) -> Float:
    """IPMT(rate, per, nper, pv, [fv], [type]) -- interest part of one payment."""
    _, interest = _period_split(args, "IPMT")
    return _finite(interest, "IPMT")


def _fn_ppmt(args: list, scope: Any) -> Float:
    """PPMT(rate, per, nper, pv, [fv], [type]) -- principal part of one payment."""
    payment, interest = _period_split(args, "PPMT")
    return _finite(payment - interest, "PPMT")


def _fn_nper(args: list, scope: Any) -> Float:
    """NPER(rate, pmt, pv, [fv], [type])."""
    check_arity("NPER", args, 3, 5)
    rate, pmt, pv, fv, kind = _annuity_args(args, "NPER", 3)
    if abs(rate) < _ZERO_RATE:
        if pmt == 0:
            raise FormulaFunctionError("NPER", "NPER pmt must not be zero when rate is zero", "#NUM!")
        return _finite(-(pv + fv) / pmt, "NPER")
    adjusted = pmt * (1 + rate * kind)
    ratio = (adjusted - fv * rate) / (adjusted + pv * rate)
    if ratio <= 0 or 1 + rate <= 0:
        raise FormulaFunctionError("NPER", "NPER has no solution for these arguments", "#NUM!")
    return _finite(math.log(ratio) / math.log(1 + rate), "NPER")


def _fn_rate(args: list, scope: Any) -> Float:
    """RATE(nper, pmt, pv, [fv], [type], [guess])."""
    check_arity("RATE", args, 3, 6)
    nper, pmt, pv, fv, kind = _annuity_args(args, "RATE", 3)
    guess = number(args, 5, "RATE", default=0.1)

    def balance(rate: float) -> float:
        if abs(rate) < _ZERO_RATE:
            return pv + pmt * nper + fv
        factor = math.pow(1 + rate, -nper)
        return pv + pmt * (1 + rate * kind) * (1 - factor) / rate + fv * factor

    rate = _newton(balance, guess)
    if rate is None:
        raise FormulaFunctionError("RATE", "RATE failed to converge", "#NUM!")
    return Float(rate)


# ---------------------------------------------------------------------------
# Cash flows
# ---------------------------------------------------------------------------


def _discounted(rate: float, flows: list[float]) -> float:
    return math.fsum(cf / (1 + rate) ** i for i, cf in enumerate(flows))


def _require_sign_change(flows: list[float], func: str) -> None:
    if not any(cf > 0 for cf in flows) or not any(cf < 0 for cf in flows):
        raise FormulaFunctionError(
            func, f"{func} requires at least one positive and one negative cash flow", "#NUM!"
        )


def _fn_npv(args: list, scope: Any) -> Float:
    """NPV(rate, value1, ...) -- discounts from period 1, not period 0."""
    check_arity("NPV", args, 2, None)
    rate = number(args, 0, "NPV")
    if rate == -1:
        raise FormulaFunctionError("NPV", "NPV rate must not be -1", "#DIV/0!")
    flows = collect_numbers(args[1:], "NPV")
    return _finite(_discounted(rate, flows) / (1 + rate), "NPV")


def _fn_irr(args: list, scope: Any) -> Float:
    """IRR(values, [guess]) -- rate at which the period-0 NPV is zero."""
    check_arity("IRR", args, 1, 2)
    flows = flatten_numbers(args[0], "IRR")
    if not flows:
        raise FormulaFunctionError("IRR", "IRR requires at least one cash flow", "#NUM!")
    _require_sign_change(flows, "IRR")
    rate = _newton(lambda r: _discounted(r, flows), number(args, 1, "IRR", default=0.1))
    if rate is None:
        raise FormulaFunctionError("IRR", "IRR failed to converge", "#NUM!")
    return Float(rate)


def _dated_flows(values_arg: Any, dates_arg: Any, func: str) -> tuple[list[float], list[float]]:
    """Cash flows and their Actual/365 year offsets from the first date."""
    values = as_range(values_arg).values
    dates = as_range(dates_arg).values
    if not values or len(values) != len(dates):
        raise FormulaFunctionError(
            func, f"{func} requires values and dates ranges of the same non-zero length", "#NUM!"
        )
    flows: list[float] = []
    for value in values:
        value = settle(value)
        if isinstance(value, Error):
            raise CellValueError(value)
        n = strict_number(value)
        flows.append(0.0 if n is None else n)
    serials: list[float] = []
    for value in dates:
        value = settle(value)
        if isinstance(value, Error):
            raise CellValueError(value)
        n = strict_number(value)
        if n is None:
            raise FormulaFunctionError(func, f"{func} dates must be numeric serials")
        serials.append(math.floor(n))
    first = serials[0]
    if any(d < first for d in serials):
        raise FormulaFunctionError(func, f"{func} dates must not precede the first date", "#NUM!")
    return flows, [(d - first) / 365.0 for d in serials]


def _xnpv(rate: float, flows: list[float], years: list[float]) -> float:
    return math.fsum(cf / math.pow(1 + rate, t) for cf, t in zip(flows, years))


def _fn_xnpv(args: list, scope: Any) -> Float:
    """XNPV(rate, values, dates)."""
    check_arity("XNPV", args, 3)
    rate = number(args, 0, "XNPV")
    if rate <= -1:
        raise FormulaFunctionError("XNPV", "XNPV rate must be greater than -1", "#NUM!")
    flows, years = _dated_flows(args[1], args[2], "XNPV")
    return _finite(_xnpv(rate, flows, years), "XNPV")


def _fn_xirr(args: list, scope: Any) -> Float:
    """XIRR(values, dates, [guess])."""
    check_arity("XIRR", args, 2, 3)
    flows, years = _dated_flows(args[0], args[1], "XIRR")
    _require_sign_change(flows, "XIRR")
    rate = _newton(lambda r: _xnpv(r, flows, years), number(args, 2, "XIRR", default=0.1))
    if rate is None:
        raise FormulaFunctionError("XIRR", "XIRR failed to converge", "#NUM!")
    return Float(rate)


def _fn_mirr(args: list, scope: Any) -> Float:
    """MIRR(values, finance_rate, reinvest_rate).

    Outflows are discounted to period 0 at the finance rate, inflows are
    compounded to the last period at the reinvestment rate.
    """
    check_arity("MIRR", args, 3)
    flows = flatten_numbers(args[0], "MIRR")
    finance_rate = number(args, 1, "MIRR")
    reinvest_rate = number(args, 2, "MIRR")
    if len(flows) < 2 or not any(cf > 0 for cf in flows) or not any(cf < 0 for cf in flows):
        raise FormulaFunctionError(
            "MIRR", "MIRR requires at least one positive and one negative cash flow", "#DIV/0!"
        )
    last = len(flows) - 1
    inflows = math.fsum(cf * (1 + reinvest_rate) ** (last - i) for i, cf in enumerate(flows) if cf > 0)
    outflows = math.fsum(cf / (1 + finance_rate) ** i for i, cf in enumerate(flows) if cf < 0)
    return _real("MIRR", lambda: math.pow(inflows / -outflows, 1 / last) - 1)


# ---------------------------------------------------------------------------
# Depreciation
# ---------------------------------------------------------------------------


def _fn_sln(args: list, scope: Any) -> Float:
    """SLN(cost, salvage, life) -- straight-line depreciation per period."""
    check_arity("SLN", args, 3)
    cost, salvage, life = (number(args, i, "SLN") for i in range(3))
    if life == 0:
        raise FormulaFunctionError("SLN", "SLN life must not be zero", "#DIV/0!")
    return _finite((cost - salvage) / life, "SLN")


def _fn_syd(args: list, scope: Any) -> Float:
    """SYD(cost, salvage, life, per) -- sum-of-years'-digits depreciation."""
    check_arity("SYD", args, 4)
    cost, salvage, life, per = (number(args, i, "SYD") for i in range(4))
    if life <= 0 or per <= 0 or per > life:
        raise FormulaFunctionError("SYD", "SYD requires 0 < per <= life", "#NUM!")
    return _finite((cost - salvage) * (life - per + 1) * 2 / (life * (life + 1)), "SYD")


def _fn_ddb(args: list, scope: Any) -> Float:
    """DDB(cost, salvage, life, period, [factor]) -- declining balance, factor 2 by default.

    A period's charge never takes the book value below salvage.  A
    fractional period gets that share of the next full period's charge.
    """
    check_arity("DDB", args, 4, 5)
    cost, salvage, life, period = (number(args, i, "DDB") for i in range(4))
    factor = number(args, 4, "DDB", default=2.0)
    if cost < 0 or salvage < 0 or life <= 0 or factor <= 0 or period <= 0 or period > life:
        raise FormulaFunctionError("DDB", "DDB arguments are out of range", "#NUM!")

    def charge(book: float) -> float:
        return max(0.0, min(book * factor / life, book - salvage))

    book = cost
    depreciation = 0.0
    whole = math.floor(period)
    for _ in range(whole):
        depreciation = charge(book)
        book -= depreciation
    fraction = period - whole
    if fraction > 0:
        depreciation = min(charge(book) * fraction, max(0.0, book - salvage))
    return _finite(depreciation, "DDB")


FINANCE_FUNCTIONS: dict[str, Any] = {
    "PV": _fn_pv,
    "FV": _fn_fv,
    "PMT": _fn_pmt,
    "IPMT": _fn_ipmt,
    "PPMT": _fn_ppmt,
    "NPER": _fn_nper,
    "RATE": _fn_rate,
    "NPV": _fn_npv,
    "IRR": _fn_irr,
    "XNPV": _fn_xnpv,
    "XIRR": _fn_xirr,
    "MIRR": _fn_mirr,
    "SLN": _fn_sln,
    "SYD": _fn_syd,
    "DDB": _fn_ddb,
}
