"""Serial-date calendar with the 1900 leap-year artifact.

Serial 1 is 1900-01-01.  Serial 60 is the fictitious 1900-02-29 and every
serial from 61 onward is one day later than a true day count from
1899-12-31.  The fraction of a serial is the time of day.
"""

from __future__ import annotations

import calendar
import datetime
import math

_EPOCH = datetime.date(1899, 12, 31)

FAKE_LEAP_DAY = 60
MAX_SERIAL = 2958465  # 9999-12-31
SECONDS_PER_DAY = 86400


def date_to_serial(value: datetime.date) -> int:
    """Serial number for a real calendar date."""
    days = (value - _EPOCH).days
    if days >= FAKE_LEAP_DAY:
        days += 1
    return days


def datetime_to_serial(value: datetime.datetime) -> float:
    seconds = value.hour * 3600 + value.minute * 60 + value.second + value.microsecond / 1e6
    return date_to_serial(value.date()) + seconds / SECONDS_PER_DAY


def ymd_to_serial(year: int, month: int, day: int) -> int:
    """Serial for (year, month, day) with month and day overflow normalized.

    Month overflow rolls the year; day overflow is added in serial space, so
    ``(1900, 2, 29)`` lands on serial 60 and ``(1900, 3, 0)`` does too.

    Raises:
        ValueError: If the normalized year is outside 1..9999.
    """
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    first = datetime.date(year, month, 1)
    return date_to_serial(first) + day - 1


def serial_to_ymd(serial: float) -> tuple[int, int, int]:
    """Calendar (year, month, day) for a serial, honoring serial 60.

    Raises:
        ValueError: For negative serials or serials past 9999-12-31.
    """
    n = math.floor(serial)
    if n < 0 or n > MAX_SERIAL:
        raise ValueError(f"serial {serial!r} is outside the supported date range")
    if n == 0:
        return 1900, 1, 0
    if n == FAKE_LEAP_DAY:
        return 1900, 2, 29
    if n > FAKE_LEAP_DAY:
        n -= 1
    d = _EPOCH + datetime.timedelta(days=n)
    return d.year, d.month, d.day


def days_in_month(year: int, month: int) -> int:
    if year == 1900 and month == 2:
        return 29
    return calendar.monthrange(year, month)[1]


def weekday_index(serial: float) -> int:
    """Day of week for a serial, Monday=0 .. Sunday=6.

    Computed from the serial itself, so serials before 61 follow the same
    weekly cycle as the rest of the calendar.
    """
    return (math.floor(serial) + 5) % 7


def seconds_of_day(serial: float) -> int:
    """Whole seconds past midnight, rounded to the nearest second."""
    fraction = serial - math.floor(serial)
    return round(fraction * SECONDS_PER_DAY) % SECONDS_PER_DAY


def format_serial(serial: float) -> str:
    """ISO-style text for a serial: ``YYYY-MM-DD`` or ``YYYY-MM-DDTHH:MM:SS``."""
    y, m, d = serial_to_ymd(serial)
    text = f"{y:04d}-{m:02d}-{d:02d}"
    secs = seconds_of_day(serial)
    if secs:
        text += f"T{secs // 3600:02d}:{secs // 60 % 60:02d}:{secs % 60:02d}"
    return text
