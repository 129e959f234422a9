"""Lark-based parser for spreadsheet formulas.

Supports:
- Cell references: ``F2``, ``$AA$10``, ``Sheet1!A1``, ``'My Sheet'!A1``
- Ranges: ``A1:B10`` with the same optional sheet prefix
- Defined names (resolved by the host at evaluation time)
- Array constants: ``{1,2;3,4}``
- Arithmetic, ``&`` concatenation, comparisons, postfix percent (%)
- Function calls with omitted arguments: ``IF(A1,,2)``

The parser is purely syntactic.  References without a sheet prefix keep
``sheet=None`` and are bound to the current sheet by the evaluator.
"""

from __future__ import annotations

import re

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import LarkError, UnexpectedInput, VisitError

from sheetcalc.formulas.errors import FormulaParseError
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
from sheetcalc.formulas.references import (
    column_index,
    format_cell,
    quote_sheet,
    resolve_cell,
    resolve_range,
)
from sheetcalc.formulas.values import (
    EMPTY,
    Bool,
    CellValue,
    DateTime,
    Empty,
    Error,
    Float,
    Int,
    String,
    format_number,
)

MAX_FORMULA_LENGTH = 8192

# LALR(1) grammar.  Operator precedence (lowest to highest):
#   1. Comparison: = <> < <= > >=
#   2. Concatenation: &
#   3. Addition/subtraction: + -
#   4. Multiplication/division: * /
#   5. Exponentiation: ^ (left-associative)
#   6. Unary plus/minus: + -   (so -2^2 = 4)
#   7. Postfix percent: %
#   8. Atoms
GRAMMAR = r"""
start: "="? expr

?expr: comparison

?comparison: concat
    | comparison "=" concat   -> eq
    | comparison "<>" concat  -> ne
    | comparison "<" concat   -> lt
    | comparison "<=" concat  -> le
    | comparison ">" concat   -> gt
    | comparison ">=" concat  -> ge

?concat: additive
    | concat "&" additive  -> concat

?additive: multiplicative
    | additive "+" multiplicative  -> add
    | additive "-" multiplicative  -> sub

?multiplicative: power
    | multiplicative "*" power  -> mul
    | multiplicative "/" power  -> div

?power: unary
    | power "^" unary  -> pow

?unary: postfix
    | "-" unary  -> neg
    | "+" unary  -> pos

?postfix: atom
    | postfix "%"  -> percent

?atom: NUMBER                -> number
    | STRING                 -> string
    | BOOL                   -> boolean
    | ERROR_LITERAL          -> error_literal
    | FUNC_NAME args ")"     -> func_call
    | RANGE_REF              -> range_ref
    | CELL_REF               -> cell_ref
    | NAME                   -> name
    | "(" expr ")"
    | "{" array_row (";" array_row)* "}"  -> array

args: [expr] ("," [expr])*

array_row: array_item ("," array_item)*

?array_item: NUMBER       -> number
    | "-" NUMBER          -> neg_number
    | STRING              -> string
    | BOOL                -> boolean
    | ERROR_LITERAL       -> error_literal

// Function names carry their opening parenthesis so LOG10( is never a cell.
FUNC_NAME.4: /[A-Za-z_][A-Za-z0-9_.]*\(/

RANGE_REF.3: /(?:(?:'(?:[^']|'')*'|[A-Za-z_][A-Za-z0-9_.]*)!)?\$?[A-Za-z]+\$?[0-9]+:\$?[A-Za-z]+\$?[0-9]+(?![A-Za-z0-9_.])/

CELL_REF.2: /(?:(?:'(?:[^']|'')*'|[A-Za-z_][A-Za-z0-9_.]*)!)?\$?[A-Za-z]+\$?[0-9]+(?![A-Za-z0-9_.!])/

BOOL.2: /(?:TRUE|FALSE)(?![A-Za-z0-9_.])/i

ERROR_LITERAL: /#(?:NULL!|DIV\/0!|VALUE!|REF!|NAME\?|NUM!|N\/A)/i

NAME.1: /[A-Za-z_\\][A-Za-z0-9_.]*/

STRING: /"(?:[^"]|"")*"/

NUMBER: /(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?/

%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start")

_INTEGER_RE = re.compile(r"^[0-9]+$")
# Letters-then-digits text whose letters run past the last column is a name.
_NAME_LIKE_RE = re.compile(r"^([A-Za-z]+)[0-9]+$")


def _number_value(token: Token) -> CellValue:
    text = str(token)
    if _INTEGER_RE.match(text):
        value = int(text)
        if value < 2**63:
            return Int(value)
    return Float(float(text))


@v_args(inline=True)
class _ExprBuilder(Transformer):
    """Turns the lark parse tree into ``Expr`` dataclasses."""

    def start(self, expr: Expr) -> Expr:
        return expr

    # Literals

    def number(self, token: Token) -> Literal:
        return Literal(_number_value(token))

    def neg_number(self, token: Token) -> Literal:
        value = _number_value(token)
        if isinstance(value, Int):
            return Literal(Int(-value.value))
        return Literal(Float(-value.value))

    def string(self, token: Token) -> Literal:
        return Literal(String(str(token)[1:-1].replace('""', '"')))

    def boolean(self, token: Token) -> Literal:
        return Literal(Bool(str(token).upper() == "TRUE"))

    def error_literal(self, token: Token) -> Literal:
        return Literal(Error(str(token).upper()))

    # References

    def cell_ref(self, token: Token) -> CellRef | Name:
        text = str(token)
        resolved = resolve_cell(None, text)
        if resolved is None:
            shaped = _NAME_LIKE_RE.match(text)
            if shaped and column_index(shaped.group(1)) is None:
                return Name(text)
            raise FormulaParseError(f"Invalid cell reference {str(token)!r}", position=token.start_pos)
        return CellRef(*resolved)

    def range_ref(self, token: Token) -> RangeRef:
        resolved = resolve_range(None, str(token))
        if resolved is None:
            raise FormulaParseError(f"Invalid range reference {str(token)!r}", position=token.start_pos)
        return resolved

    def name(self, token: Token) -> Name:
        return Name(str(token))

    # Calls and arrays

    def func_call(self, token: Token, args: tuple[Expr, ...]) -> FunctionCall:
        return FunctionCall(str(token)[:-1].upper(), args)

    def args(self, *items: Expr | None) -> tuple[Expr, ...]:
        if items == (None,):
            return ()
        return tuple(Literal(EMPTY) if item is None else item for item in items)

    def array_row(self, *items: Literal) -> tuple[CellValue, ...]:
        return tuple(item.value for item in items)

    def array(self, *rows: tuple[CellValue, ...]) -> ArrayLiteral:
        if len({len(row) for row in rows}) != 1:
            raise FormulaParseError("Array constant rows must all have the same length")
        return ArrayLiteral(tuple(rows))

    # Operators

    def neg(self, operand: Expr) -> UnaryOp:
        return UnaryOp(UnaryOperator.NEG, operand)

    def pos(self, operand: Expr) -> UnaryOp:
        return UnaryOp(UnaryOperator.POS, operand)

    def percent(self, operand: Expr) -> UnaryOp:
        return UnaryOp(UnaryOperator.PERCENT, operand)

    def add(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.ADD, left, right)

    def sub(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.SUB, left, right)

    def mul(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.MUL, left, right)

    def div(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.DIV, left, right)

    def pow(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.POW, left, right)

    def concat(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.CONCAT, left, right)

    def eq(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.EQ, left, right)

    def ne(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.NE, left, right)

    def lt(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.LT, left, right)

    def le(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.LE, left, right)

    def gt(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.GT, left, right)

    def ge(self, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(BinaryOperator.GE, left, right)


def parse_formula(text: str, max_length: int = MAX_FORMULA_LENGTH) -> Expr:
    """Parse formula text (a leading ``=`` is optional) into an expression tree.

    Args:
        text: The formula text, e.g. ``"=SUM(A1:A10) * 1.2"``.
        max_length: Longest formula accepted.

    Returns:
        The root ``Expr`` node.

    Raises:
        FormulaParseError: If the formula has invalid syntax or a malformed
            reference.
    """
    text = text.strip()
    if not text or text == "=":
        raise FormulaParseError("Empty formula", position=0)
    if len(text) > max_length:
        raise FormulaParseError(f"Formula exceeds {max_length} characters")
    try:
        tree = _parser.parse(text)
    except UnexpectedInput as exc:
        raise FormulaParseError(_describe(exc), position=getattr(exc, "pos_in_stream", None)) from exc
    except LarkError as exc:
        raise FormulaParseError(str(exc)) from exc
    try:
        return _ExprBuilder().transform(tree)
    except VisitError as exc:
        if isinstance(exc.orig_exc, FormulaParseError):
            raise exc.orig_exc from None
        raise


def _describe(exc: UnexpectedInput) -> str:
    token = getattr(exc, "token", None)
    if token is not None:
        if token.type == "$END":
            return "Unexpected end of formula"
        return f"Unexpected token {str(token)!r}"
    char = getattr(exc, "char", None)
    if char is not None:
        return f"Unexpected character {char!r}"
    return "Invalid formula"


# ---------------------------------------------------------------------------
# Tree utilities
# ---------------------------------------------------------------------------


def _children(expr: Expr) -> tuple[Expr, ...]:
    if isinstance(expr, FunctionCall):
        return expr.args
    if isinstance(expr, UnaryOp):
        return (expr.operand,)
    if isinstance(expr, BinaryOp):
        return (expr.left, expr.right)
    return ()


def extract_refs(expr: Expr) -> list[CellRef | RangeRef]:
    """Collect every cell and range reference in *expr*, in source order."""
    found: list[CellRef | RangeRef] = []
    stack = [expr]
    while stack:
        node = stack.pop()
        if isinstance(node, (CellRef, RangeRef)):
            if node not in found:
                found.append(node)
        stack.extend(reversed(_children(node)))
    return found


_PRECEDENCE = {
    BinaryOperator.EQ: 1,
    BinaryOperator.NE: 1,
    BinaryOperator.LT: 1,
    BinaryOperator.LE: 1,
    BinaryOperator.GT: 1,
    BinaryOperator.GE: 1,
    BinaryOperator.CONCAT: 2,
    BinaryOperator.ADD: 3,
    BinaryOperator.SUB: 3,
    BinaryOperator.MUL: 4,
    BinaryOperator.DIV: 4,
    BinaryOperator.POW: 5,
}


def _format_value(value: CellValue) -> str:
    if isinstance(value, String):
        return '"' + value.text.replace('"', '""') + '"'
    if isinstance(value, Int):
        return str(value.value)
    if isinstance(value, Float):
        return format_number(value.value)
    if isinstance(value, DateTime):
        return format_number(value.serial)
    if isinstance(value, Bool):
        return "TRUE" if value.value else "FALSE"
    if isinstance(value, Error):
        return value.code
    if isinstance(value, Empty):
        return ""
    return str(value)


def format_expr(expr: Expr) -> str:
    """Render an expression tree back to formula text (without ``=``)."""
    if isinstance(expr, Literal):
        return _format_value(expr.value)
    if isinstance(expr, CellRef):
        return format_cell(expr.row, expr.col, expr.sheet)
    if isinstance(expr, RangeRef):
        prefix = f"{quote_sheet(expr.sheet)}!" if expr.sheet is not None else ""
        return f"{prefix}{format_cell(expr.start_row, expr.start_col)}:{format_cell(expr.end_row, expr.end_col)}"
    if isinstance(expr, Name):
        return expr.name
    if isinstance(expr, ArrayLiteral):
        rows = (",".join(_format_value(v) for v in row) for row in expr.rows)
        return "{" + ";".join(rows) + "}"
    if isinstance(expr, FunctionCall):
        return f"{expr.name}(" + ",".join(format_expr(a) for a in expr.args) + ")"
    if isinstance(expr, UnaryOp):
        inner = format_expr(expr.operand)
        if isinstance(expr.operand, BinaryOp):
            inner = f"({inner})"
        if expr.op is UnaryOperator.PERCENT:
            return f"{inner}%"
        return f"{expr.op.value}{inner}"

    level = _PRECEDENCE[expr.op]
    left = format_expr(expr.left)
    right = format_expr(expr.right)
    if isinstance(expr.left, BinaryOp) and _PRECEDENCE[expr.left.op] < level:
        left = f"({left})"
    if isinstance(expr.right, BinaryOp) and _PRECEDENCE[expr.right.op] <= level:
        right = f"({right})"
    return f"{left}{expr.op.value}{right}"
