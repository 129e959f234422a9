"""Date and time formula functions.

All dates are serial numbers on the 1900 calendar of
:mod:`sheetcalc.formulas.serial`.  Weekdays come from the serial itself, so
the fictitious 1900-02-29 keeps its place in the weekly cycle.
"""

from __future__ import annotations

import datetime
import math
import re
from typing import Any

from sheetcalc.formulas.arguments import (
    boolean,
    check_arity,
    integer,
    iter_values,
    scalar,
    text,
)
from sheetcalc.formulas.coercion import parse_number_text, require_number
from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.serial import (
    MAX_SERIAL,
    SECONDS_PER_DAY,
    date_to_serial,
    datetime_to_serial,
    days_in_month,
    seconds_of_day,
    serial_to_ymd,
    weekday_index,
    ymd_to_serial,
)
from sheetcalc.formulas.values import (
    CellValue,
    DateTime,
    Empty,
    Error,
    Float,
    Int,
    String,
    number_result,
)

_ISO_DATE_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")

_DATE_FORMATS = (
    "%m/%d/%Y",
    "%d-%b-%Y",
    "%d %b %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)

_TIME_FORMATS = (
    "%H:%M:%S",
    "%H:%M",
    "%I:%M:%S %p",
    "%I:%M %p",
)


# ---------------------------------------------------------------------------
# Text parsing
# ---------------------------------------------------------------------------


def _parse_date(text: str) -> int | None:
    m = _ISO_DATE_RE.match(text)
    if m:
        year, month, day = (int(g) for g in m.groups())
        if not (1900 <= year <= 9999 and 1 <= month <= 12):
            return None
        if not 1 <= day <= days_in_month(year, month):
            return None
        return ymd_to_serial(year, month, day)
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.datetime.strptime(text, fmt).date()
        except ValueError:
            continue
        if parsed.year < 1900:
            return None
        return date_to_serial(parsed)
    return None


def _parse_time(text: str) -> float | None:
    for fmt in _TIME_FORMATS:
        try:
            parsed = datetime.datetime.strptime(text.upper(), fmt)
        except ValueError:
            continue
        return (parsed.hour * 3600 + parsed.minute * 60 + parsed.second) / SECONDS_PER_DAY
    return None


def parse_datetime_text(text: str) -> float | None:
    """Serial for date text, time text, or both joined by a space or ``T``."""
    s = text.strip()
    if not s:
        return None
    date_serial = _parse_date(s)
    if date_serial is not None:
        return float(date_serial)
    time_fraction = _parse_time(s)
    if time_fraction is not None:
        return time_fraction
    for sep in ("T", " "):
        if sep in s:
            head, _, tail = s.partition(sep)
            date_serial = _parse_date(head.strip())
            time_fraction = _parse_time(tail.strip())
            if date_serial is not None and time_fraction is not None:
                return date_serial + time_fraction
    return None


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _serial(value: CellValue, func: str) -> float:
    if isinstance(value, Error):
        raise CellValueError(value)
    if isinstance(value, DateTime):
        serial = value.serial
    elif isinstance(value, String):
        serial = parse_datetime_text(value.text)
        if serial is None:
            serial = parse_number_text(value.text)
        if serial is None:
            raise FormulaFunctionError(func, f"{func}: {value.text!r} is not a date")
    else:
        serial = require_number(value, func)
    if serial < 0 or serial >= MAX_SERIAL + 1:
        raise FormulaFunctionError(func, f"{func}: date is out of range", "#NUM!")
    return serial


def _serial_arg(args: list, i: int, func: str) -> float:
    return _serial(scalar(args[i], func), func)


def _ymd(args: list, i: int, func: str) -> tuple[int, int, int]:
    return serial_to_ymd(_serial_arg(args, i, func))


def _date_result(serial: float, func: str) -> DateTime:
    if serial < 0 or serial > MAX_SERIAL:
        raise FormulaFunctionError(func, f"{func} result is out of range", "#NUM!")
    return DateTime(float(serial))


def _safe_ymd_to_serial(year: int, month: int, day: int, func: str) -> int:
    try:
        return ymd_to_serial(year, month, day)
    except (ValueError, OverflowError):
        raise FormulaFunctionError(func, f"{func} result is out of range", "#NUM!") from None


# ---------------------------------------------------------------------------
# Construction and parts
# ---------------------------------------------------------------------------


def _fn_date(args: list, scope: Any) -> DateTime:
    """DATE(year, month, day) -- month and day overflow roll over."""
    check_arity("DATE", args, 3)
    year = integer(args, 0, "DATE")
    month = integer(args, 1, "DATE")
    day = integer(args, 2, "DATE")
    if 0 <= year < 1900:
        year += 1900
    if year < 0 or year > 9999:
        raise FormulaFunctionError("DATE", "DATE year must be between 0 and 9999", "#NUM!")
    return _date_result(_safe_ymd_to_serial(year, month, day, "DATE"), "DATE")


def _fn_time(args: list, scope: Any) -> DateTime:
    """TIME(hour, minute, second) -- a fraction of a day, wrapping at 24h."""
    check_arity("TIME", args, 3)
    total = (
        integer(args, 0, "TIME") * 3600
        + integer(args, 1, "TIME") * 60
        + integer(args, 2, "TIME")
    )
    if total < 0:
        raise FormulaFunctionError("TIME", "TIME arguments out of range", "#NUM!")
    return DateTime((total % SECONDS_PER_DAY) / SECONDS_PER_DAY)


def _fn_year(args: list, scope: Any) -> Int:
    check_arity("YEAR", args, 1)
    return Int(_ymd(args, 0, "YEAR")[0])


def _fn_month(args: list, scope: Any) -> Int:
    check_arity("MONTH", args, 1)
    return Int(_ymd(args, 0, "MONTH")[1])


def _fn_day(args: list, scope: Any) -> Int:
    check_arity("DAY", args, 1)
    return Int(_ymd(args, 0, "DAY")[2])


def _fn_hour(args: list, scope: Any) -> Int:
    check_arity("HOUR", args, 1)
    return Int(seconds_of_day(_serial_arg(args, 0, "HOUR")) // 3600)


def _fn_minute(args: list, scope: Any) -> Int:
    check_arity("MINUTE", args, 1)
    return Int(seconds_of_day(_serial_arg(args, 0, "MINUTE")) // 60 % 60)


def _fn_second(args: list, scope: Any) -> Int:
    check_arity("SECOND", args, 1)
    return Int(seconds_of_day(_serial_arg(args, 0, "SECOND")) % 60)


def _fn_edate(args: list, scope: Any) -> DateTime:
    """EDATE(start_date, months) -- same day N months away, clamped to month end."""
    check_arity("EDATE", args, 2)
    year, month, day = _ymd(args, 0, "EDATE")
    total = month - 1 + integer(args, 1, "EDATE")
    year, month = year + total // 12, total % 12 + 1
    if not 1 <= year <= 9999:
        raise FormulaFunctionError("EDATE", "EDATE result is out of range", "#NUM!")
    day = min(day, days_in_month(year, month))
    return _date_result(_safe_ymd_to_serial(year, month, day, "EDATE"), "EDATE")


def _fn_eomonth(args: list, scope: Any) -> DateTime:
    """EOMONTH(start_date, months) -- last day of the month N months away."""
    check_arity("EOMONTH", args, 2)
    year, month, _ = _ymd(args, 0, "EOMONTH")
    months = integer(args, 1, "EOMONTH")
    serial = _safe_ymd_to_serial(year, month + months + 1, 1, "EOMONTH") - 1
    return _date_result(serial, "EOMONTH")


def _fn_days(args: list, scope: Any) -> Int | Float:
    """DAYS(end_date, start_date)."""
    check_arity("DAYS", args, 2)
    end = math.floor(_serial_arg(args, 0, "DAYS"))
    start = math.floor(_serial_arg(args, 1, "DAYS"))
    return number_result(end - start)


def _last_of_february(year: int, month: int, day: int) -> bool:
    return month == 2 and day == days_in_month(year, 2)


def _days360(start: tuple[int, int, int], end: tuple[int, int, int], european: bool) -> int:
    """DAYS360 day count between two (year, month, day) tuples."""
    sy, sm, sd = start
    ey, em, ed = end
    if european:
        sd, ed = min(sd, 30), min(ed, 30)
    else:
        if sd == 31 or _last_of_february(sy, sm, sd):
            sd = 30
        if ed == 31:
            if sd < 30:
                ed, em = 1, em + 1
            else:
                ed = 30
    return (ey - sy) * 360 + (em - sm) * 30 + (ed - sd)


def _days360_nasd(start: tuple[int, int, int], end: tuple[int, int, int]) -> int:
    """30/360 US (NASD) count used by YEARFRAC basis 0."""
    sy, sm, sd = start
    ey, em, ed = end
    if _last_of_february(sy, sm, sd) and _last_of_february(ey, em, ed):
        ed = 30
    if _last_of_february(sy, sm, sd):
        sd = 30
    if ed == 31 and sd >= 30:
        ed = 30
    if sd == 31:
        sd = 30
    return (ey - sy) * 360 + (em - sm) * 30 + (ed - sd)


def _fn_days360(args: list, scope: Any) -> Int:
    """DAYS360(start_date, end_date, [method]) -- TRUE selects the European method."""
    check_arity("DAYS360", args, 2, 3)
    start = _ymd(args, 0, "DAYS360")
    end = _ymd(args, 1, "DAYS360")
    european = boolean(args, 2, "DAYS360", default=False)
    return Int(_days360(start, end, european))


def _fn_datedif(args: list, scope: Any) -> Int:
    """DATEDIF(start_date, end_date, unit) -- unit is Y, M, D, MD, YM or YD."""
    check_arity("DATEDIF", args, 3)
    start = math.floor(_serial_arg(args, 0, "DATEDIF"))
    end = math.floor(_serial_arg(args, 1, "DATEDIF"))
    unit = text(args, 2, "DATEDIF").strip().upper()
    if start > end:
        raise FormulaFunctionError("DATEDIF", "DATEDIF start_date is after end_date", "#NUM!")
    sy, sm, sd = serial_to_ymd(start)
    ey, em, ed = serial_to_ymd(end)
    months = (ey - sy) * 12 + (em - sm) - (1 if ed < sd else 0)

    if unit == "D":
        return Int(end - start)
    if unit == "M":
        return Int(months)
    if unit == "Y":
        return Int(months // 12)
    if unit == "YM":
        return Int(months % 12)
    if unit == "MD":
        if ed >= sd:
            return Int(ed - sd)
        prev_year, prev_month = (ey, em - 1) if em > 1 else (ey - 1, 12)
        return Int(days_in_month(prev_year, prev_month) - sd + ed)
    if unit == "YD":
        year = sy
        anniversary = _safe_ymd_to_serial(year, em, min(ed, days_in_month(year, em)), "DATEDIF")
        if anniversary < start:
            year += 1
            anniversary = _safe_ymd_to_serial(year, em, min(ed, days_in_month(year, em)), "DATEDIF")
        return Int(anniversary - start)
    raise FormulaFunctionError("DATEDIF", f"DATEDIF: unknown unit {unit!r}", "#NUM!")


def _year_length(year: int) -> int:
    return 337 + days_in_month(year, 2)


def _fn_yearfrac(args: list, scope: Any) -> Float:
    """YEARFRAC(start_date, end_date, [basis]).

    Basis 0 is 30/360 US, 1 actual/actual, 2 actual/360, 3 actual/365 and
    4 30/360 European.  For actual/actual spanning several years the
    denominator is the average length of the years touched.
    """
    check_arity("YEARFRAC", args, 2, 3)
    start = math.floor(_serial_arg(args, 0, "YEARFRAC"))
    end = math.floor(_serial_arg(args, 1, "YEARFRAC"))
    basis = integer(args, 2, "YEARFRAC", default=0)
    if basis < 0 or basis > 4:
        raise FormulaFunctionError("YEARFRAC", "YEARFRAC basis must be 0 to 4", "#NUM!")
    if start > end:
        start, end = end, start
    first, last = serial_to_ymd(start), serial_to_ymd(end)
    days = end - start

    if basis == 0:
        return Float(_days360_nasd(first, last) / 360)
    if basis == 1:
        years = range(first[0], last[0] + 1)
        average = sum(_year_length(y) for y in years) / len(years)
        return Float(days / average)
    if basis == 2:
        return Float(days / 360)
    if basis == 3:
        return Float(days / 365)
    return Float(_days360(first, last, european=True) / 360)


def _fn_datevalue(args: list, scope: Any) -> DateTime:
    check_arity("DATEVALUE", args, 1)
    value = scalar(args[0], "DATEVALUE")
    if isinstance(value, String):
        serial = parse_datetime_text(value.text)
        if serial is None or serial < 1:
            raise FormulaFunctionError("DATEVALUE", "DATEVALUE: unsupported date format")
        return DateTime(float(math.floor(serial)))
    return DateTime(float(math.floor(_serial(value, "DATEVALUE"))))


def _fn_timevalue(args: list, scope: Any) -> DateTime:
    check_arity("TIMEVALUE", args, 1)
    value = scalar(args[0], "TIMEVALUE")
    if isinstance(value, String):
        serial = parse_datetime_text(value.text)
        if serial is None:
            raise FormulaFunctionError("TIMEVALUE", "TIMEVALUE: unsupported time format")
    else:
        serial = _serial(value, "TIMEVALUE")
    return DateTime(serial - math.floor(serial))


def _fn_today(args: list, scope: Any) -> DateTime:
    check_arity("TODAY", args, 0)
    return DateTime(float(date_to_serial(scope.now().date())))


def _fn_now(args: list, scope: Any) -> DateTime:
    check_arity("NOW", args, 0)
    return DateTime(datetime_to_serial(scope.now()))


# ---------------------------------------------------------------------------
# Weekdays and week numbers
# ---------------------------------------------------------------------------


def _fn_weekday(args: list, scope: Any) -> Int:
    """WEEKDAY(serial, [return_type]).

    1: Sunday=1..Saturday=7, 2: Monday=1..Sunday=7, 3: Monday=0..Sunday=6,
    11-17: 1 for Monday..Sunday respectively.
    """
    check_arity("WEEKDAY", args, 1, 2)
    idx = weekday_index(_serial_arg(args, 0, "WEEKDAY"))
    kind = integer(args, 1, "WEEKDAY", default=1)
    if kind == 1:
        return Int((idx + 1) % 7 + 1)
    if kind == 2:
        return Int(idx + 1)
    if kind == 3:
        return Int(idx)
    if 11 <= kind <= 17:
        return Int((idx - (kind - 11)) % 7 + 1)
    raise FormulaFunctionError("WEEKDAY", "WEEKDAY return_type is not supported", "#NUM!")


def _iso_week(serial: float) -> int:
    n = math.floor(serial)
    thursday = n - weekday_index(n) + 3
    year = serial_to_ymd(thursday)[0]
    return (thursday - ymd_to_serial(year, 1, 1)) // 7 + 1


def _fn_isoweeknum(args: list, scope: Any) -> Int:
    check_arity("ISOWEEKNUM", args, 1)
    try:
        return Int(_iso_week(_serial_arg(args, 0, "ISOWEEKNUM")))
    except ValueError:
        raise FormulaFunctionError("ISOWEEKNUM", "ISOWEEKNUM date is out of range", "#NUM!") from None


def _fn_weeknum(args: list, scope: Any) -> Int:
    """WEEKNUM(serial, [return_type]) -- week 1 contains January 1st."""
    check_arity("WEEKNUM", args, 1, 2)
    serial = _serial_arg(args, 0, "WEEKNUM")
    kind = integer(args, 1, "WEEKNUM", default=1)
    if kind == 21:
        return _fn_isoweeknum(args[:1], scope)
    if kind == 1:
        first_day = 6
    elif kind == 2:
        first_day = 0
    elif 11 <= kind <= 17:
        first_day = kind - 11
    else:
        raise FormulaFunctionError("WEEKNUM", "WEEKNUM return_type is not supported", "#NUM!")
    n = math.floor(serial)
    jan1 = ymd_to_serial(serial_to_ymd(n)[0], 1, 1)
    offset = (weekday_index(jan1) - first_day) % 7
    return Int((n - jan1 + offset) // 7 + 1)


# ---------------------------------------------------------------------------
# Working days
# ---------------------------------------------------------------------------


def _weekend_mask(args: list, i: int, func: str) -> tuple[bool, ...]:
    """Weekend flags Monday..Sunday from a weekend code or a 7-char mask."""
    if i >= len(args) or isinstance(scalar(args[i], func), Empty):
        return (False, False, False, False, False, True, True)
    value = scalar(args[i], func)
    if isinstance(value, String):
        mask = value.text
        if len(mask) != 7 or set(mask) - {"0", "1"} or mask == "1111111":
            raise FormulaFunctionError(func, f"{func} weekend mask is invalid", "#NUM!")
        return tuple(ch == "1" for ch in mask)
    code = math.trunc(require_number(value, func))
    days: set[int]
    if 1 <= code <= 7:
        days = {(code + 4) % 7, (code + 5) % 7}
    elif 11 <= code <= 17:
        days = {(code - 11 + 6) % 7}
    else:
        raise FormulaFunctionError(func, f"{func} weekend code is invalid", "#NUM!")
    return tuple(d in days for d in range(7))


def _holidays(args: list, i: int, func: str) -> set[int]:
    if i >= len(args):
        return set()
    out: set[int] = set()
    for value, _ in iter_values([args[i]]):
        if isinstance(value, Empty):
            continue
        out.add(math.floor(_serial(value, func)))
    return out


def _workday(args: list, func: str, weekend: tuple[bool, ...], holidays: set[int]) -> DateTime:
    current = math.floor(_serial_arg(args, 0, func))
    days = integer(args, 1, func)
    step = 1 if days > 0 else -1
    remaining = abs(days)
    while remaining:
        current += step
        if current < 0 or current > MAX_SERIAL:
            raise FormulaFunctionError(func, f"{func} result is out of range", "#NUM!")
        if not weekend[weekday_index(current)] and current not in holidays:
            remaining -= 1
    return DateTime(float(current))


def _fn_workday(args: list, scope: Any) -> DateTime:
    """WORKDAY(start_date, days, [holidays])."""
    check_arity("WORKDAY", args, 2, 3)
    weekend = _weekend_mask([], 0, "WORKDAY")
    return _workday(args, "WORKDAY", weekend, _holidays(args, 2, "WORKDAY"))


def _fn_workday_intl(args: list, scope: Any) -> DateTime:
    """WORKDAY.INTL(start_date, days, [weekend], [holidays])."""
    check_arity("WORKDAY.INTL", args, 2, 4)
    weekend = _weekend_mask(args, 2, "WORKDAY.INTL")
    return _workday(args, "WORKDAY.INTL", weekend, _holidays(args, 3, "WORKDAY.INTL"))


def _networkdays(args: list, func: str, weekend: tuple[bool, ...], holidays: set[int]) -> Int:
    start = math.floor(_serial_arg(args, 0, func))
    end = math.floor(_serial_arg(args, 1, func))
    sign = 1
    if start > end:
        start, end, sign = end, start, -1
    span = end - start + 1
    per_week = weekend.count(False)
    count = span // 7 * per_week
    first_idx = weekday_index(start)
    for k in range(span % 7):
        if not weekend[(first_idx + k) % 7]:
            count += 1
    for day in holidays:
        if start <= day <= end and not weekend[weekday_index(day)]:
            count -= 1
    return Int(sign * count)


def _fn_networkdays(args: list, scope: Any) -> Int:
    """NETWORKDAYS(start_date, end_date, [holidays]) -- inclusive, signed."""
    check_arity("NETWORKDAYS", args, 2, 3)
    weekend = _weekend_mask([], 0, "NETWORKDAYS")
    return _networkdays(args, "NETWORKDAYS", weekend, _holidays(args, 2, "NETWORKDAYS"))


def _fn_networkdays_intl(args: list, scope: Any) -> Int:
    """NETWORKDAYS.INTL(start_date, end_date, [weekend], [holidays])."""
    check_arity("NETWORKDAYS.INTL", args, 2, 4)
    weekend = _weekend_mask(args, 2, "NETWORKDAYS.INTL")
    return _networkdays(args, "NETWORKDAYS.INTL", weekend, _holidays(args, 3, "NETWORKDAYS.INTL"))


DATE_FUNCTIONS: dict[str, Any] = {
    "DATE": _fn_date,
    "TIME": _fn_time,
    "YEAR": _fn_year,
    "MONTH": _fn_month,
    "DAY": _fn_day,
    "HOUR": _fn_hour,
    "MINUTE": _fn_minute,
    "SECOND": _fn_second,
    "EDATE": _fn_edate,
    "EOMONTH": _fn_eomonth,
    "DAYS": _fn_days,
    "DAYS360": _fn_days360,
    "DATEDIF": _fn_datedif,
    "YEARFRAC": _fn_yearfrac,
    "DATEVALUE": _fn_datevalue,
    "TIMEVALUE": _fn_timevalue,
    "TODAY": _fn_today,
    "NOW": _fn_now,
    "WEEKDAY": _fn_weekday,
    "WEEKNUM": _fn_weeknum,
    "ISOWEEKNUM": _fn_isoweeknum,
    "WORKDAY": _fn_workday,
    "WORKDAY.INTL": _fn_workday_intl,
    "NETWORKDAYS": _fn_networkdays,
    "NETWORKDAYS.INTL": _fn_networkdays_intl,
}
