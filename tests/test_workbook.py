"""Tests for loading YAML workbooks into a CellGraph."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from sheetcalc.config import EvaluatorConfig
from sheetcalc.formulas import Float, FormulaParseError, Int, String
from sheetcalc.workbook import load_workbook, read_spec


def _write(path: Path, spec: dict) -> Path:
    path.write_text(yaml.dump(spec, sort_keys=False))
    return path


class TestReadSpec:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_spec(tmp_path / "nope.yaml")

    def test_empty_document(self, tmp_path: Path) -> None:
        path = tmp_path / "book.yaml"
        path.write_text("")
        assert read_spec(path) == {}

    @pytest.mark.parametrize(
        "spec,fragment",
        [
            (["a"], "mapping"),
            ({"sheets": {"name": "S"}}, "must be a list"),
            ({"sheets": [{"cells": {}}]}, "needs a 'name'"),
            ({"sheets": [{"name": "S"}, {"name": "S"}]}, "duplicate sheet"),
            ({"sheets": [], "names": ["x"]}, "'names' must be a mapping"),
        ],
    )
    def test_rejects_malformed(self, tmp_path: Path, spec: object, fragment: str) -> None:
        path = tmp_path / "book.yaml"
        path.write_text(yaml.dump(spec))
        with pytest.raises(ValueError, match=fragment):
            read_spec(path)


class TestLoadWorkbook:
    def test_cells_and_names(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "book.yaml", {
            "sheets": [
                {"name": "Inputs", "cells": {"A1": 0.05, "a2": "=A1*12"}},
                {"name": "Calc", "cells": {"A1": "=Rate*100"}},
            ],
            "names": {"Rate": {"sheet": "Inputs", "start": "A1"}},
        })
        graph = load_workbook(path)
        assert graph.sheet_names == ["Inputs", "Calc"]
        assert graph.evaluate_cell("Inputs", "A2").value == pytest.approx(0.6)
        assert graph.evaluate_cell("Calc", "A1").value == pytest.approx(5.0)

    def test_csv_sheet(self, tmp_path: Path) -> None:
        (tmp_path / "data.csv").write_text("region,amount\nEast,10\nWest,5\n")
        path = _write(tmp_path / "book.yaml", {
            "sheets": [
                {"name": "Data", "csv": "data.csv", "cells": {"D1": "=SUM(B2:B3)"}},
            ],
        })
        graph = load_workbook(path)
        assert graph.evaluate_cell("Data", "A1") == String("region")
        assert graph.evaluate_cell("Data", "B2") == Int(10)
        assert graph.evaluate_cell("Data", "D1") == Float(15.0)

    def test_cells_override_csv(self, tmp_path: Path) -> None:
        (tmp_path / "data.csv").write_text("1,2\n3,4\n")
        path = _write(tmp_path / "book.yaml", {
            "sheets": [
                {"name": "Data", "csv": "data.csv", "header": False, "cells": {"A1": 100}},
            ],
        })
        graph = load_workbook(path)
        assert graph.evaluate_cell("Data", "A1") == Int(100)
        assert graph.evaluate_cell("Data", "B2") == Int(4)

    def test_missing_csv(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "book.yaml", {"sheets": [{"name": "Data", "csv": "gone.csv"}]})
        with pytest.raises(FileNotFoundError):
            load_workbook(path)

    def test_bad_formula(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "book.yaml", {"sheets": [{"name": "S", "cells": {"A1": "=SUM("}}]})
        with pytest.raises(FormulaParseError):
            load_workbook(path)

    def test_config_and_fetcher_pass_through(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "book.yaml", {
            "sheets": [{"name": "S", "cells": {"A1": '=WEBSERVICE("https://example.com")'}}],
        })
        graph = load_workbook(
            path,
            EvaluatorConfig(web_functions=True),
            fetcher=lambda url: "pong",
        )
        assert graph.evaluate_cell("S", "A1") == String("pong")
