"""Tests for A1 reference resolution."""

from __future__ import annotations

import pytest

from sheetcalc.formulas.expr import RangeRef
from sheetcalc.formulas.references import (
    MAX_COLUMN,
    MAX_ROW,
    column_index,
    column_letters,
    format_cell,
    quote_sheet,
    resolve_cell,
    resolve_range,
)


# ────────────────────────────────────────────────────────────────
# Columns
# ────────────────────────────────────────────────────────────────


class TestColumns:
    @pytest.mark.parametrize(
        "letters,index",
        [("A", 1), ("Z", 26), ("AA", 27), ("AZ", 52), ("BA", 53), ("XFD", MAX_COLUMN)],
    )
    def test_column_index(self, letters: str, index: int) -> None:
        assert column_index(letters) == index
        assert column_letters(index) == letters

    def test_lowercase_letters(self) -> None:
        assert column_index("aa") == 27

    def test_past_last_column(self) -> None:
        assert column_index("XFE") is None
        assert column_index("AAAA") is None

    def test_not_letters(self) -> None:
        assert column_index("") is None
        assert column_index("A1") is None

    def test_column_letters_rejects_zero(self) -> None:
        with pytest.raises(ValueError):
            column_letters(0)


# ────────────────────────────────────────────────────────────────
# Cells
# ────────────────────────────────────────────────────────────────


class TestResolveCell:
    def test_plain(self) -> None:
        assert resolve_cell("Sheet1", "B7") == ("Sheet1", 7, 2)

    def test_aa10(self) -> None:
        assert resolve_cell(None, "AA10") == (None, 10, 27)

    def test_absolute_markers(self) -> None:
        assert resolve_cell("S", "$AA$10") == ("S", 10, 27)
        assert resolve_cell("S", "A$3") == ("S", 3, 1)

    def test_sheet_prefix(self) -> None:
        assert resolve_cell("Sheet1", "Sheet2!C3") == ("Sheet2", 3, 3)

    def test_quoted_sheet_with_escaped_quote(self) -> None:
        assert resolve_cell(None, "'My ''Q1'' Sheet'!A1") == ("My 'Q1' Sheet", 1, 1)

    def test_row_limits(self) -> None:
        assert resolve_cell(None, f"A{MAX_ROW}") == (None, MAX_ROW, 1)
        assert resolve_cell(None, f"A{MAX_ROW + 1}") is None
        assert resolve_cell(None, "A0") is None

    @pytest.mark.parametrize("text", ["", "A", "12", "A1B", "'Open!A1", "!A1", "''!A1"])
    def test_malformed(self, text: str) -> None:
        assert resolve_cell("Sheet1", text) is None


# ────────────────────────────────────────────────────────────────
# Ranges
# ────────────────────────────────────────────────────────────────


class TestResolveRange:
    def test_plain(self) -> None:
        assert resolve_range("Sheet1", "A1:B4") == RangeRef("Sheet1", 1, 1, 4, 2)

    def test_reversed_corners_kept_but_bounds_normalized(self) -> None:
        ref = resolve_range(None, "C5:A1")
        assert (ref.start_row, ref.start_col, ref.end_row, ref.end_col) == (5, 3, 1, 1)
        assert ref.bounds() == (1, 1, 5, 3)

    def test_quoted_sheet(self) -> None:
        ref = resolve_range(None, "'Data Set'!$A$2:$B$10")
        assert ref == RangeRef("Data Set", 2, 1, 10, 2)

    @pytest.mark.parametrize("text", ["A1", "A1:", ":B2", "A1:B2:C3", "A1:ZZZZ1"])
    def test_malformed(self, text: str) -> None:
        assert resolve_range(None, text) is None


class TestFormatting:
    def test_quote_sheet(self) -> None:
        assert quote_sheet("Sheet1") == "Sheet1"
        assert quote_sheet("My Sheet") == "'My Sheet'"
        assert quote_sheet("Bob's") == "'Bob''s'"

    def test_format_cell(self) -> None:
        assert format_cell(10, 27) == "AA10"
        assert format_cell(1, 1, "My Sheet") == "'My Sheet'!A1"
