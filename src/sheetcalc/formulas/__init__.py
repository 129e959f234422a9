"""Spreadsheet formula parsing and evaluation.

Public API::

    from sheetcalc.formulas import parse_formula, extract_refs, evaluate
"""

from sheetcalc.formulas.context import EvaluationContext, HttpFetcher
from sheetcalc.formulas.errors import (
    CellValueError,
    FormulaError,
    FormulaFunctionError,
    FormulaParseError,
    FormulaRefError,
    WebFetchError,
)
from sheetcalc.formulas.evaluator import evaluate, evaluate_formula, function_names
from sheetcalc.formulas.expr import (
    ArrayLiteral,
    BinaryOp,
    BinaryOperator,
    CellRef,
    Expr,
    FunctionCall,
    Literal,
    Name,
    RangeRef,
    UnaryOp,
    UnaryOperator,
)
from sheetcalc.formulas.parser import extract_refs, format_expr, parse_formula
from sheetcalc.formulas.references import resolve_cell, resolve_range
from sheetcalc.formulas.values import (
    EMPTY,
    Bool,
    CellValue,
    DateTime,
    Empty,
    Error,
    Float,
    Formula,
    Int,
    RangeValue,
    String,
    from_python,
    to_python,
)

__all__ = [
    "EMPTY",
    "ArrayLiteral",
    "BinaryOp",
    "BinaryOperator",
    "Bool",
    "CellRef",
    "CellValue",
    "CellValueError",
    "DateTime",
    "Empty",
    "Error",
    "EvaluationContext",
    "Expr",
    "Float",
    "Formula",
    "FormulaError",
    "FormulaFunctionError",
    "FormulaParseError",
    "FormulaRefError",
    "FunctionCall",
    "HttpFetcher",
    "Int",
    "Literal",
    "Name",
    "RangeRef",
    "RangeValue",
    "String",
    "UnaryOp",
    "UnaryOperator",
    "WebFetchError",
    "evaluate",
    "evaluate_formula",
    "extract_refs",
    "format_expr",
    "from_python",
    "function_names",
    "parse_formula",
    "resolve_cell",
    "resolve_range",
    "to_python",
]
