"""Command-line interface for sheetcalc."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from sheetcalc import __version__
from sheetcalc.config import EvaluatorConfig, load_config
from sheetcalc.formulas.errors import FormulaError
from sheetcalc.formulas.evaluator import FUNCTION_GROUPS, evaluate, function_names
from sheetcalc.formulas.expr import (
    ArrayLiteral,
    BinaryOp,
    Expr,
    FunctionCall,
    Literal,
    UnaryOp,
)
from sheetcalc.formulas.parser import extract_refs, format_expr, parse_formula
from sheetcalc.formulas.values import CellValue, Error, to_python
from sheetcalc.logging import configure_from


@click.group()
@click.version_option(version=__version__, prog_name="sheetcalc")
def main() -> None:
    """sheetcalc -- spreadsheet formula engine.

    Parse formulas, evaluate them against a workbook, and recalculate
    whole workbooks from YAML/CSV documents.
    """


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _load_config(config_path: str | None, web: bool | None) -> EvaluatorConfig:
    try:
        config = load_config(Path(config_path) if config_path else Path.cwd())
    except (ValueError, ValidationError) as e:
        raise click.ClickException(f"Invalid config: {e}")
    if web is not None:
        config = config.model_copy(update={"web_functions": web})
    configure_from(config)
    return config


def _value_json(value: CellValue) -> dict[str, Any]:
    out: dict[str, Any] = {"value": to_python(value), "type": type(value).__name__}
    if isinstance(value, Error):
        out["error"] = value.code
    return out


def _tree(expr: Expr) -> dict[str, Any]:
    """JSON-friendly view of an expression tree."""
    kind = type(expr).__name__
    if isinstance(expr, Literal):
        return {"type": kind, "value": to_python(expr.value)}
    if isinstance(expr, ArrayLiteral):
        return {"type": kind, "rows": [[to_python(v) for v in row] for row in expr.rows]}
    if isinstance(expr, FunctionCall):
        return {"type": kind, "name": expr.name, "args": [_tree(a) for a in expr.args]}
    if isinstance(expr, UnaryOp):
        return {"type": kind, "op": expr.op.value, "operand": _tree(expr.operand)}
    if isinstance(expr, BinaryOp):
        return {
            "type": kind,
            "op": expr.op.value,
            "left": _tree(expr.left),
            "right": _tree(expr.right),
        }
    # CellRef, RangeRef, Name
    return {"type": kind, "text": format_expr(expr)}


# ---------------------------------------------------------------------------
# eval
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("formula")
@click.option("--workbook", "workbook_path", default=None, type=click.Path(exists=True), help="Workbook YAML to evaluate against.")
@click.option("--sheet", default=None, help="Sheet that unqualified references bind to.")
@click.option("--cell", default=None, help="Place the formula in this cell before evaluating.")
@click.option("--config", "config_path", default=None, type=click.Path(), help="Path to sheetcalc.yaml.")
@click.option("--web/--no-web", default=None, help="Enable or disable web functions.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def eval_cmd(
    formula: str,
    workbook_path: str | None,
    sheet: str | None,
    cell: str | None,
    config_path: str | None,
    web: bool | None,
    as_json: bool,
) -> None:
    """Evaluate FORMULA and print the result."""
    from sheetcalc.cell_graph import CellGraph
    from sheetcalc.workbook import load_workbook

    config = _load_config(config_path, web)
    try:
        if workbook_path:
            graph = load_workbook(workbook_path, config=config)
        else:
            graph = CellGraph({sheet or "Sheet1": {}}, config=config)
        sheet = sheet or graph.sheet_names[0]
        if sheet not in graph.sheet_names:
            raise click.ClickException(f"Sheet {sheet!r} not found")
        if cell:
            graph.set_formula(sheet, cell, formula)
            value = graph.evaluate_cell(sheet, cell)
        else:
            value = evaluate(graph, sheet, formula, config)
    except (FormulaError, FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    if as_json:
        out = {"formula": formula, "sheet": sheet, **_value_json(value)}
        if cell:
            out["cell"] = cell.upper()
        click.echo(json.dumps(out, indent=2))
    else:
        click.echo(str(value))


# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------


@main.command("parse")
@click.argument("formula")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def parse_cmd(formula: str, as_json: bool) -> None:
    """Parse FORMULA and show its normalized form and references."""
    try:
        expr = parse_formula(formula)
    except FormulaError as e:
        raise click.ClickException(str(e))
    refs = [format_expr(ref) for ref in extract_refs(expr)]

    if as_json:
        out = {"formula": formula, "normalized": "=" + format_expr(expr), "refs": refs, "tree": _tree(expr)}
        click.echo(json.dumps(out, indent=2))
        return
    click.echo(f"Normalized: ={format_expr(expr)}")
    click.echo(f"References: {', '.join(refs) if refs else '(none)'}")


# ---------------------------------------------------------------------------
# functions
# ---------------------------------------------------------------------------


@main.command("functions")
@click.option("--category", default=None, help="Only list one function group.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def functions_cmd(category: str | None, as_json: bool) -> None:
    """List the built-in functions by group."""
    if category is not None and category not in FUNCTION_GROUPS:
        raise click.ClickException(
            f"Unknown category {category!r}. Available: {', '.join(FUNCTION_GROUPS)}"
        )
    groups = [category] if category else list(FUNCTION_GROUPS)
    listing = {group: function_names(group) for group in groups}

    if as_json:
        click.echo(json.dumps(listing, indent=2))
        return
    for group, names in listing.items():
        click.echo(f"{group} ({len(names)}):")
        click.echo(f"  {', '.join(names)}")


# ---------------------------------------------------------------------------
# recalc
# ---------------------------------------------------------------------------


@main.command("recalc")
@click.argument("workbook_path", type=click.Path(exists=True))
@click.option("--run-id", default=None, help="Also log this pass to runs/<RUN_ID>.ndjson under the log dir.")
@click.option("--config", "config_path", default=None, type=click.Path(), help="Path to sheetcalc.yaml.")
@click.option("--web/--no-web", default=None, help="Enable or disable web functions.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def recalc_cmd(workbook_path: str, run_id: str | None, config_path: str | None, web: bool | None, as_json: bool) -> None:
    """Recalculate every cell of WORKBOOK_PATH and print the values."""
    from sheetcalc.workbook import load_workbook

    config = _load_config(config_path, web)
    try:
        graph = load_workbook(workbook_path, config=config)
    except (FormulaError, FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))
    results = graph.evaluate_all(run_id=run_id)
    errors = graph.get_errors()

    if as_json:
        out = {
            "sheets": {
                sheet: {addr: to_python(value) for addr, value in cells.items()}
                for sheet, cells in results.items()
            },
            "errors": [
                {"sheet": sheet, "cell": addr, "message": message}
                for (sheet, addr), message in sorted(errors.items())
            ],
        }
        click.echo(json.dumps(out, indent=2))
        return

    for sheet, cells in results.items():
        click.echo(f"{sheet}:")
        for addr, value in cells.items():
            click.echo(f"  {addr:8s} {value}")
    total = sum(len(cells) for cells in results.values())
    click.echo(f"Cells: {total}  Errors: {len(errors)}")
