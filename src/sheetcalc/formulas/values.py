"""Cell values and materialized ranges.

``CellValue`` is a closed union of frozen dataclasses.  ``RangeValue`` is the
row-major rectangle produced by flattening a range reference, an array
constant, or an array-returning function.
"""

from __future__ import annotations

import datetime
import math
from dataclasses import dataclass
from typing import Any, Iterator, Union

from sheetcalc.formulas.serial import date_to_serial, datetime_to_serial, format_serial

ERROR_CODES = ("#NULL!", "#DIV/0!", "#VALUE!", "#REF!", "#NAME?", "#NUM!", "#N/A")


@dataclass(frozen=True)
class Empty:
    def __str__(self) -> str:
        return ""


@dataclass(frozen=True)
class String:
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class Int:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Float:
    value: float

    def __str__(self) -> str:
        return format_number(self.value)


@dataclass(frozen=True)
class Bool:
    value: bool

    def __str__(self) -> str:
        return "TRUE" if self.value else "FALSE"


@dataclass(frozen=True)
class DateTime:
    """A serial date/time.  The integer part counts days, the fraction is time."""

    serial: float

    def __str__(self) -> str:
        try:
            return format_serial(self.serial)
        except ValueError:
            return format_number(self.serial)


@dataclass(frozen=True)
class Error:
    """An error result carried as data.

    ``code`` is one of ``ERROR_CODES``; when omitted it is derived from a
    message that starts with a code, otherwise ``#VALUE!``.
    """

    message: str
    code: str = ""

    def __post_init__(self) -> None:
        if not self.code:
            code = "#VALUE!"
            for candidate in ERROR_CODES:
                if self.message == candidate or self.message.startswith(candidate + " "):
                    code = candidate
                    break
            object.__setattr__(self, "code", code)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Formula:
    """A formula cell: its expression handle and the host's cached result.

    ``cached`` is ``None`` until the host has evaluated the cell.
    """

    expression: Any
    cached: CellValue | None = None

    def __str__(self) -> str:
        return "" if self.cached is None else str(self.cached)


CellValue = Union[Empty, String, Int, Float, Bool, DateTime, Error, Formula]

EMPTY = Empty()
TRUE = Bool(True)
FALSE = Bool(False)

NA = Error("#N/A")
VALUE = Error("#VALUE!")
NUM = Error("#NUM!")
DIV0 = Error("#DIV/0!")
REF = Error("#REF!")
NAME = Error("#NAME?")


def settle(value: CellValue) -> CellValue:
    """Follow a Formula to its cached result; unevaluated formulas are blank."""
    while isinstance(value, Formula):
        value = EMPTY if value.cached is None else value.cached
    return value


def format_number(value: float) -> str:
    """General-format text: integral values without a point, else 15 digits."""
    if math.isfinite(value) and value == math.floor(value) and abs(value) < 1e15:
        return str(int(value))
    text = format(value, ".15g")
    if "e" in text:
        mantissa, exponent = text.split("e")
        text = f"{mantissa}E{exponent}"
    return text


def number_result(value: float) -> Int | Float:
    """Int when *value* is whole and fits in 64 bits, else Float."""
    if math.isfinite(value) and value == math.floor(value) and abs(value) < 2**63:
        return Int(int(value))
    return Float(value)


@dataclass(frozen=True)
class RangeValue:
    """Row-major rectangle of cell values."""

    values: tuple[CellValue, ...]
    rows: int
    cols: int

    @classmethod
    def from_rows(cls, rows: list[list[CellValue]]) -> RangeValue:
        n_cols = len(rows[0]) if rows else 0
        flat: list[CellValue] = []
        for row in rows:
            if len(row) != n_cols:
                raise ValueError("ragged rows in range value")
            flat.extend(row)
        return cls(tuple(flat), len(rows), n_cols)

    @classmethod
    def column_of(cls, values: list[CellValue]) -> RangeValue:
        return cls(tuple(values), len(values), 1 if values else 0)

    @classmethod
    def scalar(cls, value: CellValue) -> RangeValue:
        return cls((value,), 1, 1)

    def get(self, row: int, col: int) -> CellValue:
        """Element at 1-based (row, col)."""
        if not (1 <= row <= self.rows and 1 <= col <= self.cols):
            raise IndexError(f"({row}, {col}) outside {self.rows}x{self.cols} range")
        return self.values[(row - 1) * self.cols + (col - 1)]

    def row(self, n: int) -> tuple[CellValue, ...]:
        start = (n - 1) * self.cols
        return self.values[start:start + self.cols]

    def column(self, n: int) -> tuple[CellValue, ...]:
        return tuple(self.values[(r * self.cols) + n - 1] for r in range(self.rows))

    @property
    def is_vector(self) -> bool:
        return self.rows == 1 or self.cols == 1

    def __iter__(self) -> Iterator[CellValue]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)


# ---------------------------------------------------------------------------
# Python interop
# ---------------------------------------------------------------------------


def from_python(obj: Any) -> CellValue:
    """Convert a plain Python value into a CellValue."""
    if obj is None:
        return EMPTY
    if isinstance(obj, (Empty, String, Int, Float, Bool, DateTime, Error, Formula)):
        return obj
    if isinstance(obj, bool):
        return Bool(obj)
    if isinstance(obj, int):
        return Int(obj)
    if isinstance(obj, float):
        if math.isnan(obj):
            return EMPTY
        return Float(obj)
    if isinstance(obj, str):
        if obj in ERROR_CODES:
            return Error(obj)
        return String(obj)
    if isinstance(obj, datetime.datetime):
        return DateTime(datetime_to_serial(obj))
    if isinstance(obj, datetime.date):
        return DateTime(float(date_to_serial(obj)))
    raise TypeError(f"Cannot convert {type(obj).__name__} to a cell value")


def to_python(value: CellValue) -> Any:
    """Convert a CellValue into a JSON-friendly Python value.

    Dates become ISO-style strings and errors become their message.
    """
    value = settle(value)
    if isinstance(value, Empty):
        return None
    if isinstance(value, String):
        return value.text
    if isinstance(value, (Int, Float, Bool)):
        return value.value
    if isinstance(value, DateTime):
        return str(value)
    if isinstance(value, Error):
        return value.message
    raise TypeError(f"Unexpected cell value {value!r}")
