"""A1-style reference resolution.

Turns textual references such as ``B7``, ``$AA$10``, ``Sheet2!C3`` or
``'My ''Q1'' Sheet'!A1:B4`` into 1-based coordinates.  Resolution returns
``None`` for anything malformed; the parser reports that as a parse error.
"""

from __future__ import annotations

import re

from sheetcalc.formulas.expr import RangeRef

MAX_COLUMN = 16384  # XFD
MAX_ROW = 1048576

_CELL_RE = re.compile(r"^\$?([A-Za-z]+)\$?([0-9]+)$")
_BARE_SHEET_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def column_index(letters: str) -> int | None:
    """Bijective base-26 column number (A=1, Z=26, AA=27), or None past XFD."""
    if not letters or not letters.isalpha() or not letters.isascii():
        return None
    index = 0
    for ch in letters.upper():
        index = index * 26 + (ord(ch) - ord("A") + 1)
        if index > MAX_COLUMN:
            return None
    return index


def column_letters(index: int) -> str:
    """Inverse of :func:`column_index`."""
    if index < 1:
        raise ValueError(f"column index must be >= 1, got {index}")
    letters = ""
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def quote_sheet(name: str) -> str:
    """Render a sheet name for use as a reference prefix."""
    if _BARE_SHEET_RE.match(name):
        return name
    return "'" + name.replace("'", "''") + "'"


def format_cell(row: int, col: int, sheet: str | None = None) -> str:
    addr = f"{column_letters(col)}{row}"
    if sheet is not None:
        return f"{quote_sheet(sheet)}!{addr}"
    return addr


def _split_sheet(text: str) -> tuple[str | None, str]:
    """Split ``prefix!rest`` at the last ``!`` outside quotes.

    Raises:
        ValueError: On an unterminated quote or an empty sheet name.
    """
    in_quote = False
    bang = -1
    for i, ch in enumerate(text):
        if ch == "'":
            in_quote = not in_quote
        elif ch == "!" and not in_quote:
            bang = i
    if in_quote:
        raise ValueError(f"unterminated quoted sheet name in {text!r}")
    if bang < 0:
        return None, text

    prefix, rest = text[:bang], text[bang + 1:]
    if prefix.startswith("'"):
        if len(prefix) < 2 or not prefix.endswith("'"):
            raise ValueError(f"malformed quoted sheet name {prefix!r}")
        name = prefix[1:-1].replace("''", "'")
    else:
        name = prefix
    if not name:
        raise ValueError("empty sheet name")
    return name, rest


def _parse_cell(token: str) -> tuple[int, int] | None:
    m = _CELL_RE.match(token)
    if not m:
        return None
    col = column_index(m.group(1))
    row = int(m.group(2))
    if col is None or row < 1 or row > MAX_ROW:
        return None
    return row, col


def resolve_cell(current_sheet: str | None, text: str) -> tuple[str | None, int, int] | None:
    """Resolve ``[sheet!]cell`` text to ``(sheet, row, col)``.

    ``current_sheet`` is substituted when the text carries no prefix.
    """
    try:
        sheet, rest = _split_sheet(text.strip())
    except ValueError:
        return None
    parsed = _parse_cell(rest)
    if parsed is None:
        return None
    return (sheet if sheet is not None else current_sheet), parsed[0], parsed[1]


def resolve_range(current_sheet: str | None, text: str) -> RangeRef | None:
    """Resolve ``[sheet!]start:end`` text to a RangeRef.

    Start and end are kept as written; use ``RangeRef.bounds()`` for the
    normalized rectangle.
    """
    try:
        sheet, rest = _split_sheet(text.strip())
    except ValueError:
        return None
    parts = rest.split(":")
    if len(parts) != 2:
        return None
    start = _parse_cell(parts[0])
    end = _parse_cell(parts[1])
    if start is None or end is None:
        return None
    return RangeRef(
        sheet if sheet is not None else current_sheet,
        start[0],
        start[1],
        end[0],
        end[1],
    )
