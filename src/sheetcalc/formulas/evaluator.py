"""Tree-walking evaluator for parsed formula expressions.

Supports:
- Cell and range references bound to the current sheet when unqualified
- Defined names through the context's optional ``resolve_name``
- Array constants
- A static function table merged from the ``fn_*`` modules, with lazy
  functions receiving raw expressions

Run-time failures are returned as ``Error`` values, never raised.
"""

from __future__ import annotations

import datetime
import logging
import math
from typing import Any

from sheetcalc.config import EvaluatorConfig
from sheetcalc.formulas.coercion import compare_values, to_number, to_text
from sheetcalc.formulas.context import EvaluationContext
from sheetcalc.formulas.errors import (
    CellValueError,
    FormulaError,
    FormulaFunctionError,
    FormulaRefError,
)
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
from sheetcalc.formulas.fn_aggregate import AGGREGATE_ERROR_TOLERANT, AGGREGATE_FUNCTIONS
from sheetcalc.formulas.fn_database import DATABASE_FUNCTIONS
from sheetcalc.formulas.fn_date import DATE_FUNCTIONS
from sheetcalc.formulas.fn_engineering import ENGINEERING_FUNCTIONS
from sheetcalc.formulas.fn_error import ERROR_FUNCTIONS, ERROR_TOLERANT_FUNCTIONS
from sheetcalc.formulas.fn_finance import FINANCE_FUNCTIONS
from sheetcalc.formulas.fn_logical import LOGICAL_FUNCTIONS, LOGICAL_LAZY_FUNCTIONS
from sheetcalc.formulas.fn_lookup import LOOKUP_FUNCTIONS, LOOKUP_LAZY_FUNCTIONS
from sheetcalc.formulas.fn_math import MATH_FUNCTIONS, power_value
from sheetcalc.formulas.fn_stats import STATS_FUNCTIONS
from sheetcalc.formulas.fn_text import TEXT_FUNCTIONS
from sheetcalc.formulas.fn_web import WEB_FUNCTIONS
from sheetcalc.formulas.parser import parse_formula
from sheetcalc.formulas.values import (
    DIV0,
    NUM,
    Bool,
    CellValue,
    DateTime,
    Error,
    Float,
    Int,
    RangeValue,
    String,
    settle,
)
from sheetcalc.logging import EventType, emit_warning
from sheetcalc.logging.events import UNKNOWN_FUNCTION

logger = logging.getLogger(__name__)

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_RANGE_AS_SCALAR = Error("#VALUE! range used where a single value is expected")


# ---------------------------------------------------------------------------
# Evaluation scope
# ---------------------------------------------------------------------------


class EvalScope:
    """Per-call state threaded through every recursive evaluation step."""

    def __init__(
        self,
        context: EvaluationContext,
        current_sheet: str | None,
        config: EvaluatorConfig,
    ) -> None:
        self.context = context
        self.current_sheet = current_sheet
        self.config = config

    def evaluate(self, expr: Expr) -> CellValue | RangeValue:
        return _eval(expr, self)

    def scalar(self, expr: Expr) -> CellValue:
        """Evaluate *expr* and collapse a 1x1 range to its value."""
        return collapse(_eval(expr, self))

    def argument(self, expr: Expr) -> CellValue | RangeValue:
        """Evaluate a function argument; cell references arrive as 1x1 ranges.

        A defined name is resolved first, so a name bound to one cell is
        passed like a reference to that cell.
        """
        if isinstance(expr, Name):
            target = self.resolve_name(expr.name)
            if target is not None:
                expr = target
        value = _eval(expr, self)
        if isinstance(expr, CellRef) and not isinstance(value, Error):
            return RangeValue.scalar(value)
        return value

    def cell(self, ref: CellRef) -> CellValue:
        sheet = ref.sheet if ref.sheet is not None else self.current_sheet
        if sheet is None:
            return Error("#REF! no current sheet for an unqualified reference")
        try:
            return settle(self.context.get_cell(sheet, ref.row, ref.col))
        except FormulaRefError as exc:
            return Error(f"#REF! {exc}")

    def range(self, ref: RangeRef) -> RangeValue | Error:
        sheet = ref.sheet if ref.sheet is not None else self.current_sheet
        if sheet is None:
            return Error("#REF! no current sheet for an unqualified reference")
        top, left, bottom, right = ref.bounds()
        try:
            return self.context.get_range(sheet, top, left, bottom, right)
        except FormulaRefError as exc:
            return Error(f"#REF! {exc}")

    def position(self) -> tuple[str, int, int] | None:
        return self.context.current_position()

    def resolve_name(self, name: str) -> CellRef | RangeRef | None:
        resolver = getattr(self.context, "resolve_name", None)
        if resolver is None:
            return None
        return resolver(self.current_sheet, name)

    def now(self) -> datetime.datetime:
        clock = getattr(self.context, "now", None)
        if clock is not None:
            return clock()
        return datetime.datetime.now()

    def fetch(self, url: str) -> str:
        return self.context.http_fetch(url)


def collapse(value: CellValue | RangeValue) -> CellValue:
    """Single value of a 1x1 range; any larger range is a ``#VALUE!`` error."""
    if isinstance(value, RangeValue):
        if value.rows == 1 and value.cols == 1:
            return settle(value.values[0])
        return _RANGE_AS_SCALAR
    return settle(value)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def evaluate(
    context: EvaluationContext,
    current_sheet: str | None,
    expression: Expr | str,
    config: EvaluatorConfig | None = None,
) -> CellValue:
    """Evaluate an expression (or formula text) in the given context.

    Args:
        context: Host collaborator supplying cell values.
        current_sheet: Sheet that unqualified references bind to.
        expression: A parsed ``Expr`` or formula text.
        config: Evaluator settings; defaults are used when omitted.

    Returns:
        The computed value.  Failures are ``Error`` values.

    Raises:
        FormulaParseError: If *expression* is text that does not parse.
    """
    config = config or EvaluatorConfig()
    if isinstance(expression, str):
        expression = parse_formula(expression, max_length=config.max_formula_length)
    scope = EvalScope(context, current_sheet, config)
    return collapse(_eval(expression, scope))


evaluate_formula = evaluate


def _eval(node: Expr, scope: EvalScope) -> CellValue | RangeValue:
    """Recursively evaluate a tree node."""
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, CellRef):
        return scope.cell(node)
    if isinstance(node, RangeRef):
        return scope.range(node)
    if isinstance(node, FunctionCall):
        return _eval_func(node, scope)
    if isinstance(node, BinaryOp):
        return _eval_binary(node, scope)
    if isinstance(node, UnaryOp):
        return _eval_unary(node, scope)
    if isinstance(node, Name):
        target = scope.resolve_name(node.name)
        if target is None:
            return Error(f"#NAME? Unknown name: {node.name}", "#NAME?")
        return _eval(target, scope)
    if isinstance(node, ArrayLiteral):
        return RangeValue.from_rows([list(row) for row in node.rows])
    raise FormulaError(f"Unknown node type: {type(node).__name__}")


# ---------- Operators ----------


def _checked_float(value: float) -> Float | Error:
    if not math.isfinite(value):
        return NUM
    return Float(value)


def _int_or_float(value: int) -> Int | Float:
    if _INT64_MIN <= value <= _INT64_MAX:
        return Int(value)
    return Float(float(value))


def _eval_unary(node: UnaryOp, scope: EvalScope) -> CellValue:
    operand = scope.scalar(node.operand)
    if isinstance(operand, Error):
        return operand
    if node.op is UnaryOperator.POS:
        return operand
    n = to_number(operand)
    if n is None:
        return Error("#VALUE!")
    if node.op is UnaryOperator.PERCENT:
        return Float(n / 100)
    if isinstance(operand, Int):
        return _int_or_float(-operand.value)
    return Float(-n)


def _eval_binary(node: BinaryOp, scope: EvalScope) -> CellValue:
    left = scope.scalar(node.left)
    if isinstance(left, Error):
        return left
    right = scope.scalar(node.right)
    if isinstance(right, Error):
        return right

    op = node.op
    if op is BinaryOperator.CONCAT:
        return String(to_text(left) + to_text(right))
    if op in _COMPARISONS:
        return Bool(_COMPARISONS[op](compare_values(left, right)))

    ln, rn = to_number(left), to_number(right)
    if ln is None or rn is None:
        return Error("#VALUE!")

    if op is BinaryOperator.ADD:
        if isinstance(left, Int) and isinstance(right, Int):
            return _int_or_float(left.value + right.value)
        if isinstance(left, DateTime) != isinstance(right, DateTime):
            return DateTime(ln + rn)
        return _checked_float(ln + rn)
    if op is BinaryOperator.SUB:
        if isinstance(left, Int) and isinstance(right, Int):
            return _int_or_float(left.value - right.value)
        if isinstance(left, DateTime) and not isinstance(right, DateTime):
            return DateTime(ln - rn)
        return _checked_float(ln - rn)
    if op is BinaryOperator.MUL:
        if isinstance(left, Int) and isinstance(right, Int):
            return _int_or_float(left.value * right.value)
        return _checked_float(ln * rn)
    if op is BinaryOperator.DIV:
        if rn == 0:
            return DIV0
        return _checked_float(ln / rn)
    if op is BinaryOperator.POW:
        return power_value(ln, rn)
    raise FormulaError(f"Unknown operator: {op!r}")


_COMPARISONS = {
    BinaryOperator.EQ: lambda c: c == 0,
    BinaryOperator.NE: lambda c: c != 0,
    BinaryOperator.LT: lambda c: c < 0,
    BinaryOperator.LE: lambda c: c <= 0,
    BinaryOperator.GT: lambda c: c > 0,
    BinaryOperator.GE: lambda c: c >= 0,
}


# ---------- Function dispatch ----------

FUNCTION_GROUPS: dict[str, dict[str, Any]] = {
    "aggregate": AGGREGATE_FUNCTIONS,
    "logical": LOGICAL_FUNCTIONS,
    "information": ERROR_FUNCTIONS,
    "lookup": LOOKUP_FUNCTIONS,
    "database": DATABASE_FUNCTIONS,
    "date": DATE_FUNCTIONS,
    "financial": FINANCE_FUNCTIONS,
    "math": MATH_FUNCTIONS,
    "statistical": STATS_FUNCTIONS,
    "engineering": ENGINEERING_FUNCTIONS,
    "text": TEXT_FUNCTIONS,
    "web": WEB_FUNCTIONS,
}

_FUNC_TABLE: dict[str, Any] = {}
for _group in FUNCTION_GROUPS.values():
    _FUNC_TABLE.update(_group)

_LAZY_FUNCTIONS: set[str] = LOGICAL_LAZY_FUNCTIONS | LOOKUP_LAZY_FUNCTIONS
_ERROR_TOLERANT: set[str] = AGGREGATE_ERROR_TOLERANT | ERROR_TOLERANT_FUNCTIONS


def function_names(group: str | None = None) -> list[str]:
    """Sorted names of the built-in functions, optionally for one group."""
    if group is None:
        return sorted(_FUNC_TABLE)
    if group not in FUNCTION_GROUPS:
        raise KeyError(group)
    return sorted(FUNCTION_GROUPS[group])


def _eval_func(node: FunctionCall, scope: EvalScope) -> CellValue | RangeValue:
    """Evaluate a function call node."""
    func_name = node.name
    func = _FUNC_TABLE.get(func_name)
    if func is None:
        emit_warning(
            EventType.unknown_function,
            f"Unknown function {func_name}",
            {"function": func_name, "sheet": scope.current_sheet},
            error_code=UNKNOWN_FUNCTION,
        )
        return Error(f"#NAME? Unknown function: {func_name}", "#NAME?")

    try:
        # Lazy functions receive unevaluated expressions
        if func_name in _LAZY_FUNCTIONS:
            return func(list(node.args), scope)

        args = [scope.argument(arg) for arg in node.args]
        if func_name not in _ERROR_TOLERANT:
            for arg in args:
                if isinstance(arg, Error):
                    return arg
        return func(args, scope)
    except FormulaFunctionError as exc:
        logger.debug("%s failed: %s", func_name, exc.message)
        return Error(exc.message, exc.code)
    except CellValueError as exc:
        return exc.error
    except ZeroDivisionError:
        return DIV0
    except OverflowError:
        return NUM
