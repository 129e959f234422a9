"""Tests for value coercion and criteria matching."""

from __future__ import annotations

import datetime

import pytest

from sheetcalc.formulas.coercion import (
    compare_values,
    is_blank,
    parse_number_text,
    to_bool,
    to_number,
    to_text,
    values_equal,
)
from sheetcalc.formulas.criteria import (
    Criteria,
    criteria_from_value,
    matches_criteria,
    parse_criteria,
    text_equals,
    wildcard_match,
)
from sheetcalc.formulas.errors import CellValueError, FormulaFunctionError
from sheetcalc.formulas.values import (
    EMPTY,
    Bool,
    DateTime,
    Error,
    Float,
    Formula,
    Int,
    RangeValue,
    String,
    format_number,
    from_python,
    number_result,
    to_python,
)


# ────────────────────────────────────────────────────────────────
# Values
# ────────────────────────────────────────────────────────────────


class TestValues:
    def test_error_code_from_message(self) -> None:
        assert Error("#DIV/0!").code == "#DIV/0!"
        assert Error("#N/A lookup failed").code == "#N/A"
        assert Error("something odd").code == "#VALUE!"
        assert Error("oops", "#NUM!").code == "#NUM!"

    def test_format_number(self) -> None:
        assert format_number(3.0) == "3"
        assert format_number(0.1 + 0.2) == "0.3"
        assert format_number(1e20) == "1E+20"

    def test_number_result(self) -> None:
        assert number_result(4.0) == Int(4)
        assert number_result(4.5) == Float(4.5)

    def test_range_accessors(self) -> None:
        rng = RangeValue.from_rows([[Int(1), Int(2)], [Int(3), Int(4)]])
        assert rng.get(2, 1) == Int(3)
        assert rng.row(1) == (Int(1), Int(2))
        assert rng.column(2) == (Int(2), Int(4))
        assert not rng.is_vector
        with pytest.raises(IndexError):
            rng.get(3, 1)

    def test_ragged_rows_rejected(self) -> None:
        with pytest.raises(ValueError):
            RangeValue.from_rows([[Int(1)], [Int(2), Int(3)]])

    def test_from_python(self) -> None:
        assert from_python(None) == EMPTY
        assert from_python(True) == Bool(True)
        assert from_python(3) == Int(3)
        assert from_python(2.5) == Float(2.5)
        assert from_python("#REF!") == Error("#REF!")
        assert from_python(datetime.date(1900, 1, 1)) == DateTime(1.0)
        with pytest.raises(TypeError):
            from_python(object())

    def test_to_python(self) -> None:
        assert to_python(Int(3)) == 3
        assert to_python(EMPTY) is None
        assert to_python(DateTime(45306.0)) == "2024-01-15"
        assert to_python(Formula(None, String("x"))) == "x"


# ────────────────────────────────────────────────────────────────
# Coercion
# ────────────────────────────────────────────────────────────────


class TestNumberCoercion:
    @pytest.mark.parametrize(
        "text,expected",
        [(" 42 ", 42.0), ("1e3", 1000.0), ("15%", 0.15), ("-0.5", -0.5)],
    )
    def test_parse_number_text(self, text: str, expected: float) -> None:
        assert parse_number_text(text) == pytest.approx(expected)

    @pytest.mark.parametrize("text", ["", "abc", "1_000", "inf", "nan", "1,5"])
    def test_parse_number_text_rejects(self, text: str) -> None:
        assert parse_number_text(text) is None

    def test_to_number_variants(self) -> None:
        assert to_number(Bool(True)) == 1.0
        assert to_number(EMPTY) == 0.0
        assert to_number(DateTime(2.5)) == 2.5
        assert to_number(String("x")) is None

    def test_to_number_raises_for_error(self) -> None:
        with pytest.raises(CellValueError) as exc_info:
            to_number(Error("#N/A"))
        assert exc_info.value.error.code == "#N/A"

    def test_unevaluated_formula_is_blank(self) -> None:
        assert to_number(Formula(None)) == 0.0
        assert is_blank(Formula(None))
        assert not is_blank(Formula(None, Int(0)))


class TestTextAndBool:
    def test_to_text(self) -> None:
        assert to_text(Float(2.0)) == "2"
        assert to_text(Bool(False)) == "FALSE"
        assert to_text(EMPTY) == ""

    def test_to_bool(self) -> None:
        assert to_bool(Int(0)) is False
        assert to_bool(String(" true ")) is True
        with pytest.raises(FormulaFunctionError):
            to_bool(String("yes"))


class TestComparison:
    def test_numbers_before_text_before_booleans(self) -> None:
        assert compare_values(Int(100), String("a")) == -1
        assert compare_values(String("z"), Bool(False)) == -1

    def test_text_is_case_insensitive(self) -> None:
        assert compare_values(String("ABC"), String("abc")) == 0

    def test_blank_takes_other_type(self) -> None:
        assert compare_values(EMPTY, Int(0)) == 0
        assert compare_values(EMPTY, String("")) == 0
        assert compare_values(EMPTY, Bool(True)) == -1

    def test_values_equal(self) -> None:
        assert values_equal(Int(1), Float(1.0))
        assert values_equal(String("Apple"), String("APPLE"))
        assert not values_equal(Int(1), String("1.5"))


# ────────────────────────────────────────────────────────────────
# Wildcards and criteria
# ────────────────────────────────────────────────────────────────


class TestWildcards:
    @pytest.mark.parametrize(
        "pattern,text,expected",
        [
            ("a*", "apple", True),
            ("*ple", "apple", True),
            ("a?ple", "apple", True),
            ("a?ple", "aple", False),
            ("*", "", True),
            ("?", "", False),
            ("a*b*c", "axxbyyc", True),
            ("a*b*c", "axxbyy", False),
        ],
    )
    def test_wildcard_match(self, pattern: str, text: str, expected: bool) -> None:
        assert wildcard_match(pattern, text) is expected

    @pytest.mark.parametrize("text", ["apple", "Apple", "", "a b", "x"])
    def test_without_wildcards_is_equality(self, text: str) -> None:
        assert wildcard_match("apple", text) is ("apple" == text)

    def test_text_equals_folds_case(self) -> None:
        assert text_equals("AP*", "apple")
        assert text_equals("Apple", "APPLE")


class TestCriteria:
    def test_parse(self) -> None:
        assert parse_criteria(">=10") == Criteria(">=", 10.0)
        assert parse_criteria("<>red") == Criteria("<>", "red")
        assert parse_criteria("apple") == Criteria("=", "apple")

    def test_from_number_value(self) -> None:
        assert criteria_from_value(Int(5)) == Criteria("=", 5.0)

    def test_numeric_comparisons(self) -> None:
        crit = parse_criteria(">5")
        assert matches_criteria(Int(6), crit)
        assert not matches_criteria(Int(5), crit)
        assert not matches_criteria(String("7"), crit)

    def test_numeric_equality_accepts_numeric_text(self) -> None:
        assert matches_criteria(String("5"), parse_criteria("=5"))

    def test_not_equal_matches_non_numbers(self) -> None:
        crit = parse_criteria("<>5")
        assert matches_criteria(String("x"), crit)
        assert matches_criteria(EMPTY, crit)
        assert not matches_criteria(Int(5), crit)

    def test_text_wildcards(self) -> None:
        crit = parse_criteria("b*")
        assert matches_criteria(String("Banana"), crit)
        assert not matches_criteria(String("apple"), crit)

    def test_errors_never_match(self) -> None:
        assert not matches_criteria(Error("#N/A"), parse_criteria("<>1"))
