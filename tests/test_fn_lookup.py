"""Tests for lookup and reference functions."""

from __future__ import annotations

from typing import Any

from sheetcalc.cell_graph import CellGraph
from sheetcalc.formulas import Error, Float, Int, String, evaluate


# ────────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────────

TABLE = {
    "A1": "id", "B1": "name", "C1": "price",
    "A2": 101, "B2": "Widget", "C2": 2.5,
    "A3": 102, "B3": "Gadget", "C3": 10,
    "A4": 103, "B4": "Gizmo", "C4": 7.25,
    "A5": 102, "B5": "Gadget v2", "C5": 12,
}


def _eval(formula: str, cells: dict | None = None) -> Any:
    graph = CellGraph({"Sheet1": cells or {}})
    return evaluate(graph, "Sheet1", formula, graph.config)


# ────────────────────────────────────────────────────────────────
# VLOOKUP / HLOOKUP
# ────────────────────────────────────────────────────────────────


class TestVlookup:
    def test_exact_match(self) -> None:
        assert _eval("=VLOOKUP(103,A2:C5,2,FALSE)", TABLE) == String("Gizmo")

    def test_first_match_wins(self) -> None:
        assert _eval("=VLOOKUP(102,A2:C5,2)", TABLE) == String("Gadget")

    def test_text_lookup_ignores_case(self) -> None:
        assert _eval('=VLOOKUP("GIZMO",B2:C5,2,FALSE)', TABLE) == Float(7.25)

    def test_wildcard_lookup(self) -> None:
        assert _eval('=VLOOKUP("Gad*",B2:C5,2,FALSE)', TABLE) == Int(10)

    def test_not_found(self) -> None:
        result = _eval("=VLOOKUP(999,A2:C5,2,FALSE)", TABLE)
        assert isinstance(result, Error)
        assert result.code == "#N/A"
        assert result.message == "VLOOKUP: value not found"

    def test_column_index_out_of_bounds(self) -> None:
        result = _eval("=VLOOKUP(101,A2:C5,4,FALSE)", TABLE)
        assert result.code == "#REF!"
        assert result.message == "VLOOKUP col_index_num out of bounds for table_array"

    def test_column_index_below_one(self) -> None:
        assert _eval("=VLOOKUP(101,A2:C5,0,FALSE)", TABLE).code == "#VALUE!"

    def test_approximate_match_not_supported(self) -> None:
        assert _eval("=VLOOKUP(101,A2:C5,2,TRUE)", TABLE).code == "#N/A"

    def test_error_lookup_value_propagates(self) -> None:
        assert _eval("=VLOOKUP(1/0,A2:C5,2,FALSE)", TABLE).code == "#DIV/0!"


class TestHlookup:
    def test_exact_match(self) -> None:
        assert _eval('=HLOOKUP("price",A1:C3,3,FALSE)', TABLE) == Int(10)

    def test_row_out_of_bounds(self) -> None:
        assert _eval('=HLOOKUP("price",A1:C3,4,FALSE)', TABLE).code == "#REF!"

    def test_not_found(self) -> None:
        assert _eval('=HLOOKUP("cost",A1:C3,2,FALSE)', TABLE).code == "#N/A"


# ────────────────────────────────────────────────────────────────
# MATCH / XMATCH / XLOOKUP
# ────────────────────────────────────────────────────────────────


class TestMatch:
    def test_match(self) -> None:
        assert _eval("=MATCH(103,A2:A5,0)", TABLE) == Int(3)
        assert _eval('=MATCH("name",A1:C1,0)', TABLE) == Int(2)

    def test_match_type_other_than_zero(self) -> None:
        assert _eval("=MATCH(103,A2:A5,1)", TABLE).code == "#N/A"

    def test_match_requires_vector(self) -> None:
        assert _eval("=MATCH(103,A2:C5,0)", TABLE).code == "#N/A"

    def test_xmatch_reverse_search(self) -> None:
        assert _eval("=XMATCH(102,A2:A5)", TABLE) == Int(2)
        assert _eval("=XMATCH(102,A2:A5,0,-1)", TABLE) == Int(4)


class TestXlookup:
    def test_vertical(self) -> None:
        assert _eval("=XLOOKUP(102,A2:A5,B2:B5)", TABLE) == String("Gadget")

    def test_last_match(self) -> None:
        assert _eval("=XLOOKUP(102,A2:A5,B2:B5,,0,-1)", TABLE) == String("Gadget v2")

    def test_if_not_found(self) -> None:
        assert _eval('=XLOOKUP(999,A2:A5,B2:B5,"none")', TABLE) == String("none")
        assert _eval("=XLOOKUP(999,A2:A5,B2:B5)", TABLE).code == "#N/A"

    def test_returns_whole_row(self) -> None:
        assert _eval("=SUM(XLOOKUP(103,A2:A5,A2:C5))", TABLE) == Float(110.25)

    def test_horizontal(self) -> None:
        assert _eval('=XLOOKUP("price",A1:C1,A2:C2)', TABLE) == Float(2.5)

    def test_size_mismatch(self) -> None:
        assert _eval("=XLOOKUP(102,A2:A5,B2:B4)", TABLE).code == "#VALUE!"


# ────────────────────────────────────────────────────────────────
# INDEX / CHOOSE / ROW / COLUMN
# ────────────────────────────────────────────────────────────────


class TestIndex:
    def test_cell(self) -> None:
        assert _eval("=INDEX(A2:C5,3,2)", TABLE) == String("Gizmo")

    def test_single_index_on_column(self) -> None:
        assert _eval("=INDEX(B2:B5,2)", TABLE) == String("Gadget")

    def test_single_index_on_row(self) -> None:
        assert _eval("=INDEX(A1:C1,3)", TABLE) == String("price")

    def test_zero_selects_whole_column(self) -> None:
        assert _eval("=SUM(INDEX(A2:C5,0,3))", TABLE) == Float(31.75)

    def test_zero_selects_whole_row(self) -> None:
        assert _eval("=COUNTA(INDEX(A2:C5,1,0))", TABLE) == Int(3)

    def test_out_of_range(self) -> None:
        assert _eval("=INDEX(A2:C5,5,1)", TABLE).code == "#REF!"
        assert _eval("=INDEX(A2:C5,-1,1)", TABLE).code == "#VALUE!"

    def test_index_with_match(self) -> None:
        assert _eval("=INDEX(C2:C5,MATCH(103,A2:A5,0))", TABLE) == Float(7.25)


class TestChoose:
    def test_choose(self) -> None:
        assert _eval('=CHOOSE(2,"a","b","c")') == String("b")

    def test_only_chosen_value_is_evaluated(self) -> None:
        assert _eval('=CHOOSE(1,"a",1/0)') == String("a")

    def test_index_out_of_range(self) -> None:
        assert _eval('=CHOOSE(4,"a","b","c")').code == "#VALUE!"
        assert _eval('=CHOOSE(0,"a")').code == "#VALUE!"


class TestRowColumn:
    def test_of_reference(self) -> None:
        assert _eval("=ROW(C7)") == Int(7)
        assert _eval("=COLUMN(C7)") == Int(3)
        assert _eval("=ROW(B3:D9)") == Int(3)
        assert _eval("=COLUMN(B3:D9)") == Int(2)

    def test_of_current_cell(self) -> None:
        graph = CellGraph({"Sheet1": {"D5": "=ROW()*100+COLUMN()"}})
        assert graph.evaluate_cell("Sheet1", "D5") == Int(504)

    def test_without_position(self) -> None:
        assert isinstance(_eval("=ROW()"), Error)

    def test_of_defined_name(self) -> None:
        graph = CellGraph(
            {"Sheet1": {}},
            {"Block": {"sheet": "Sheet1", "start": "C4", "end": "E8"}},
        )
        assert evaluate(graph, "Sheet1", "=ROW(Block)") == Int(4)
        assert evaluate(graph, "Sheet1", "=COLUMN(Block)") == Int(3)

    def test_rows_columns(self) -> None:
        assert _eval("=ROWS(A1:C5)") == Int(5)
        assert _eval("=COLUMNS(A1:C5)") == Int(3)
        assert _eval("=ROWS({1,2;3,4;5,6})") == Int(3)
