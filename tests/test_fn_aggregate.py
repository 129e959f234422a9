"""Tests for aggregate functions: SUM, AVERAGE, COUNT and the criteria family."""

from __future__ import annotations

from typing import Any

import pytest

from sheetcalc.cell_graph import CellGraph
from sheetcalc.formulas import Error, Float, Int, evaluate


# ────────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────────

SALES = {
    "A1": "Region", "B1": "Product", "C1": "Units",
    "A2": "East", "B2": "apple", "C2": 10,
    "A3": "West", "B3": "banana", "C3": 5,
    "A4": "East", "B4": "banana", "C4": 7,
    "A5": "North", "B5": "Apple", "C5": 3,
    "A6": "East", "B6": "cherry", "C6": "n/a",
}


def _eval(formula: str, cells: dict | None = None) -> Any:
    graph = CellGraph({"Sheet1": cells or {}})
    return evaluate(graph, "Sheet1", formula, graph.config)


# ────────────────────────────────────────────────────────────────
# SUM / PRODUCT / AVERAGE
# ────────────────────────────────────────────────────────────────


class TestSum:
    def test_sum_literals(self) -> None:
        assert _eval("=SUM(1,2,3)") == Float(6.0)

    def test_sum_empty_range_is_zero(self) -> None:
        assert _eval("=SUM(A1:A10)") == Float(0.0)

    def test_sum_skips_text_in_ranges(self) -> None:
        assert _eval("=SUM(C1:C6)", SALES) == Float(25.0)

    def test_sum_skips_text_in_referenced_cell(self) -> None:
        assert _eval("=SUM(A1,C2)", SALES) == Float(10.0)

    def test_sum_coerces_direct_text(self) -> None:
        assert _eval('=SUM("2",TRUE,3)') == Float(6.0)

    def test_sum_rejects_direct_non_numeric_text(self) -> None:
        assert _eval('=SUM("abc",1)').code == "#VALUE!"

    def test_sum_propagates_range_error(self) -> None:
        assert _eval("=SUM(A1:A2)", {"A1": 1, "A2": "=1/0"}).code == "#DIV/0!"

    def test_sum_array_constant(self) -> None:
        assert _eval("=SUM({1,2;3,4})") == Float(10.0)

    def test_sumsq(self) -> None:
        assert _eval("=SUMSQ(3,4)") == Float(25.0)

    def test_product(self) -> None:
        assert _eval("=PRODUCT(2,3,4)") == Float(24.0)
        assert _eval("=PRODUCT(A1:A3)") == Float(0.0)

    @pytest.mark.parametrize("formula", ["=PRODUCT(1E300,1E300)", "=SUMSQ(1E200)"])
    def test_overflow_is_num(self, formula: str) -> None:
        assert _eval(formula).code == "#NUM!"


class TestAverage:
    def test_average(self) -> None:
        assert _eval("=AVERAGE(1,2,3,4)") == Float(2.5)

    def test_average_empty_range_is_error(self) -> None:
        result = _eval("=AVERAGE(A1:A5)")
        assert isinstance(result, Error)
        assert result.code == "#DIV/0!"

    def test_averagea_counts_text_as_zero(self) -> None:
        cells = {"A1": 4, "A2": "x", "A3": True}
        assert _eval("=AVERAGEA(A1:A3)", cells).value == pytest.approx(5 / 3)

    def test_avedev(self) -> None:
        assert _eval("=AVEDEV(2,4,6)").value == pytest.approx(4 / 3)


class TestMinMax:
    def test_min_max(self) -> None:
        assert _eval("=MIN(3,-1,2)") == Float(-1.0)
        assert _eval("=MAX(3,-1,2)") == Float(3.0)

    def test_empty_is_zero(self) -> None:
        assert _eval("=MAX(A1:A3)") == Float(0.0)
        assert _eval("=MIN(A1:A3)") == Float(0.0)

    def test_mina_maxa_include_booleans(self) -> None:
        cells = {"A1": 0.5, "A2": True}
        assert _eval("=MAXA(A1:A2)", cells) == Float(1.0)
        assert _eval("=MINA(A1:A2)", {"A1": 0.5, "A2": "x"}) == Float(0.0)


# ────────────────────────────────────────────────────────────────
# COUNT family
# ────────────────────────────────────────────────────────────────


class TestCount:
    def test_count_numbers_only(self) -> None:
        assert _eval("=COUNT(C1:C6)", SALES) == Int(4)

    def test_count_ignores_errors(self) -> None:
        cells = {"A1": 1, "A2": "=1/0", "A3": 2}
        assert _eval("=COUNT(A1:A3)", cells) == Int(2)
        assert _eval("=COUNT(A2)", cells) == Int(0)

    def test_counta_counts_errors_and_text(self) -> None:
        cells = {"A1": 1, "A2": "=1/0", "A3": "x"}
        assert _eval("=COUNTA(A1:A5)", cells) == Int(3)
        assert _eval("=COUNTA(A2)", cells) == Int(1)

    def test_countblank(self) -> None:
        cells = {"A1": 1, "A3": "", "A4": '=""'}
        assert _eval("=COUNTBLANK(A1:A4)", cells) == Int(3)


# ────────────────────────────────────────────────────────────────
# Criteria aggregates
# ────────────────────────────────────────────────────────────────


class TestCriteriaAggregates:
    def test_sumif_with_sum_range(self) -> None:
        assert _eval('=SUMIF(A2:A6,"East",C2:C6)', SALES) == Float(17.0)

    def test_sumif_numeric_criteria(self) -> None:
        assert _eval('=SUMIF(C2:C6,">5")', SALES) == Float(17.0)

    def test_sumif_wildcards_case_insensitive(self) -> None:
        assert _eval('=SUMIF(B2:B6,"a*",C2:C6)', SALES) == Float(13.0)

    def test_sumif_criteria_from_cell(self) -> None:
        cells = dict(SALES, E1="West")
        assert _eval("=SUMIF(A2:A6,E1,C2:C6)", cells) == Float(5.0)

    def test_sumif_shape_mismatch(self) -> None:
        assert _eval('=SUMIF(A2:A6,"East",C2:C5)', SALES).code == "#VALUE!"

    def test_countif(self) -> None:
        assert _eval('=COUNTIF(B2:B6,"banana")', SALES) == Int(2)
        assert _eval('=COUNTIF(C2:C6,"<>7")', SALES) == Int(4)

    def test_averageif(self) -> None:
        assert _eval('=AVERAGEIF(A2:A6,"East",C2:C6)', SALES) == Float(8.5)

    def test_averageif_no_match(self) -> None:
        assert _eval('=AVERAGEIF(A2:A6,"South",C2:C6)', SALES).code == "#DIV/0!"

    def test_sumifs(self) -> None:
        assert _eval('=SUMIFS(C2:C6,A2:A6,"East",B2:B6,"banana")', SALES) == Float(7.0)

    def test_countifs(self) -> None:
        assert _eval('=COUNTIFS(A2:A6,"East",C2:C6,">=7")', SALES) == Int(2)

    def test_averageifs(self) -> None:
        assert _eval('=AVERAGEIFS(C2:C6,A2:A6,"<>West")', SALES) == Float(20 / 3)

    def test_ifs_requires_pairs(self) -> None:
        assert _eval('=COUNTIFS(A2:A6,"East",B2:B6)', SALES).code == "#VALUE!"
