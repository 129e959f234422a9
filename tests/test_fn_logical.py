"""Tests for logical and information functions."""

from __future__ import annotations

from typing import Any

import pytest

from sheetcalc.cell_graph import CellGraph
from sheetcalc.formulas import Bool, Error, Float, Int, String, evaluate


def _eval(formula: str, cells: dict | None = None) -> Any:
    graph = CellGraph({"Sheet1": cells or {}})
    return evaluate(graph, "Sheet1", formula, graph.config)


# ────────────────────────────────────────────────────────────────
# IF family
# ────────────────────────────────────────────────────────────────


class TestIf:
    def test_if_branches(self) -> None:
        assert _eval('=IF(1>0,"yes","no")') == String("yes")
        assert _eval('=IF(0,"yes","no")') == String("no")

    def test_if_without_else_is_false(self) -> None:
        assert _eval("=IF(FALSE,1)") == Bool(False)

    def test_if_condition_error_propagates(self) -> None:
        assert _eval("=IF(#N/A,1,2)").code == "#N/A"

    def test_if_text_condition(self) -> None:
        assert _eval('=IF("true",1,2)') == Int(1)
        assert _eval('=IF("maybe",1,2)').code == "#VALUE!"

    def test_if_only_evaluates_taken_branch(self) -> None:
        assert _eval("=IF(FALSE,1/0,2)") == Int(2)

    def test_ifs(self) -> None:
        assert _eval('=IFS(A1>90,"A",A1>80,"B",TRUE,"C")', {"A1": 85}) == String("B")

    def test_ifs_no_match(self) -> None:
        assert _eval("=IFS(FALSE,1,FALSE,2)").code == "#N/A"

    def test_ifs_odd_arguments(self) -> None:
        assert _eval("=IFS(TRUE,1,FALSE)").code == "#VALUE!"

    def test_iferror(self) -> None:
        assert _eval('=IFERROR(1/0,"div")') == String("div")
        assert _eval('=IFERROR(5,"div")') == Int(5)

    def test_ifna(self) -> None:
        assert _eval('=IFNA(NA(),"missing")') == String("missing")
        assert _eval('=IFNA(1/0,"missing")').code == "#DIV/0!"


class TestSwitch:
    def test_match(self) -> None:
        assert _eval('=SWITCH(2,1,"one",2,"two")') == String("two")

    def test_default(self) -> None:
        assert _eval('=SWITCH(9,1,"one",2,"two","other")') == String("other")

    def test_no_match(self) -> None:
        assert _eval('=SWITCH(9,1,"one")').code == "#N/A"

    def test_text_match_ignores_case(self) -> None:
        assert _eval('=SWITCH("B","a",1,"b",2)') == Int(2)


# ────────────────────────────────────────────────────────────────
# AND / OR / XOR / NOT
# ────────────────────────────────────────────────────────────────


class TestBooleanOperators:
    def test_and_or(self) -> None:
        assert _eval("=AND(TRUE,1,2)") == Bool(True)
        assert _eval("=AND(TRUE,0)") == Bool(False)
        assert _eval("=OR(FALSE,0,1)") == Bool(True)
        assert _eval("=OR(FALSE,0)") == Bool(False)

    def test_and_short_circuits(self) -> None:
        assert _eval("=AND(FALSE,1/0)") == Bool(False)
        assert _eval("=OR(TRUE,1/0)") == Bool(True)

    def test_ranges_skip_text_and_blanks(self) -> None:
        cells = {"A1": True, "A2": "text", "A4": 1}
        assert _eval("=AND(A1:A4)", cells) == Bool(True)

    def test_no_logical_values_is_error(self) -> None:
        assert isinstance(_eval("=AND(A1:A3)", {"A1": "x"}), Error)
        assert isinstance(_eval("=OR(A1:A3)"), Error)

    @pytest.mark.parametrize(
        "formula,expected",
        [
            ("=XOR(TRUE,TRUE,TRUE)", True),
            ("=XOR(TRUE,TRUE)", False),
            ("=XOR(FALSE,TRUE)", True),
            ("=XOR(0,0)", False),
        ],
    )
    def test_xor_counts_true_values(self, formula: str, expected: bool) -> None:
        assert _eval(formula) == Bool(expected)

    def test_xor_over_range(self) -> None:
        cells = {"A1": True, "A2": True, "A3": True}
        assert _eval("=XOR(A1:A3)", cells) == Bool(True)

    def test_not(self) -> None:
        assert _eval("=NOT(TRUE)") == Bool(False)
        assert _eval("=NOT(0)") == Bool(True)

    def test_true_false_functions(self) -> None:
        assert _eval("=TRUE()") == Bool(True)
        assert _eval("=FALSE()") == Bool(False)


# ────────────────────────────────────────────────────────────────
# Information functions
# ────────────────────────────────────────────────────────────────


class TestInformation:
    def test_iserror_family(self) -> None:
        assert _eval("=ISERROR(1/0)") == Bool(True)
        assert _eval("=ISERROR(1)") == Bool(False)
        assert _eval("=ISERR(NA())") == Bool(False)
        assert _eval("=ISERR(1/0)") == Bool(True)
        assert _eval("=ISNA(NA())") == Bool(True)

    def test_iserror_on_referenced_error(self) -> None:
        assert _eval("=ISERROR(A1)", {"A1": "=1/0"}) == Bool(True)

    def test_isblank(self) -> None:
        assert _eval("=ISBLANK(A1)") == Bool(True)
        assert _eval("=ISBLANK(A1)", {"A1": 0}) == Bool(False)
        assert _eval("=ISBLANK(A1:A2)") == Bool(False)

    def test_type_predicates(self) -> None:
        assert _eval("=ISNUMBER(DATE(2024,1,1))") == Bool(True)
        assert _eval('=ISNUMBER("1")') == Bool(False)
        assert _eval('=ISTEXT("a")') == Bool(True)
        assert _eval("=ISNONTEXT(1)") == Bool(True)
        assert _eval("=ISLOGICAL(FALSE)") == Bool(True)

    def test_parity(self) -> None:
        assert _eval("=ISEVEN(4)") == Bool(True)
        assert _eval("=ISODD(-3)") == Bool(True)
        assert _eval("=ISEVEN(2.9)") == Bool(True)

    def test_n_and_t(self) -> None:
        assert _eval("=N(TRUE)") == Int(1)
        assert _eval('=N("7")') == Int(0)
        assert _eval("=N(2.5)") == Float(2.5)
        assert _eval('=T("a")') == String("a")
        assert _eval("=T(1)") == String("")

    @pytest.mark.parametrize(
        "formula,code",
        [("=TYPE(1)", 1), ('=TYPE("a")', 2), ("=TYPE(TRUE)", 4), ("=TYPE(1/0)", 16), ("=TYPE({1,2})", 64)],
    )
    def test_type(self, formula: str, code: int) -> None:
        assert _eval(formula) == Int(code)

    @pytest.mark.parametrize(
        "formula,index",
        [("=ERROR.TYPE(#NULL!)", 1), ("=ERROR.TYPE(1/0)", 2), ("=ERROR.TYPE(NA())", 7)],
    )
    def test_error_type(self, formula: str, index: int) -> None:
        assert _eval(formula) == Int(index)

    def test_error_type_of_non_error(self) -> None:
        assert _eval("=ERROR.TYPE(1)").code == "#N/A"
