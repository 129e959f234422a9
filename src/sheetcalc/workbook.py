"""Workbook documents: a YAML spec of sheets, cells and defined names.

A workbook file looks like::

    sheets:
      - name: Inputs
        cells:
          A1: 0.05
          A2: "=A1*12"
      - name: Data
        csv: data.csv       # relative to the workbook file
        header: true
        cells:
          D1: "=SUM(B2:B100)"
    names:
      Rate: {sheet: Inputs, start: A1}

CSV sheets are read with polars and laid out from A1; explicit ``cells``
entries on the same sheet override what the CSV supplied.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import polars as pl
import yaml

from sheetcalc.cell_graph import CellGraph, frame_cells
from sheetcalc.config import EvaluatorConfig


def read_spec(path: Path) -> dict[str, Any]:
    """Read and shape-check a workbook YAML file.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the document is not a workbook spec.
    """
    if not path.exists():
        raise FileNotFoundError(f"No workbook at {path}")
    spec = yaml.safe_load(path.read_text()) or {}
    if not isinstance(spec, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    sheets = spec.get("sheets") or []
    if not isinstance(sheets, list):
        raise ValueError(f"{path}: 'sheets' must be a list")
    seen: set[str] = set()
    for i, sheet in enumerate(sheets):
        if not isinstance(sheet, dict) or not sheet.get("name"):
            raise ValueError(f"{path}: sheet #{i + 1} needs a 'name'")
        if sheet["name"] in seen:
            raise ValueError(f"{path}: duplicate sheet {sheet['name']!r}")
        seen.add(sheet["name"])
    names = spec.get("names") or {}
    if not isinstance(names, dict):
        raise ValueError(f"{path}: 'names' must be a mapping")
    return spec


def _sheet_cells(sheet: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    cells: dict[str, Any] = {}
    csv_name = sheet.get("csv")
    if csv_name:
        csv_path = base_dir / csv_name
        if not csv_path.exists():
            raise FileNotFoundError(f"No CSV at {csv_path} for sheet {sheet['name']!r}")
        header = bool(sheet.get("header", True))
        frame = pl.read_csv(csv_path, has_header=header)
        cells.update(frame_cells(frame, header=header))
    for addr, value in (sheet.get("cells") or {}).items():
        cells[str(addr).upper()] = value
    return cells


def load_workbook(
    path: Path | str,
    config: EvaluatorConfig | None = None,
    **kwargs: Any,
) -> CellGraph:
    """Load a workbook file into a :class:`CellGraph`.

    Args:
        path: The workbook YAML file.
        config: Evaluator settings for the graph.
        **kwargs: Passed through to ``CellGraph`` (``fetcher``, ``clock``).

    Raises:
        FileNotFoundError: If the workbook or one of its CSV files is missing.
        ValueError: If the document is malformed.
        FormulaParseError: If any cell formula is invalid.
    """
    path = Path(path)
    spec = read_spec(path)
    sheets = {
        sheet["name"]: _sheet_cells(sheet, path.parent)
        for sheet in spec.get("sheets") or []
    }
    return CellGraph(sheets, spec.get("names") or {}, config=config, **kwargs)
