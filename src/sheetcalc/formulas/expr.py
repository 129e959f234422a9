"""Expression tree produced by the parser and consumed by the evaluator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from sheetcalc.formulas.values import CellValue


class UnaryOperator(str, Enum):
    NEG = "-"
    POS = "+"
    PERCENT = "%"


class BinaryOperator(str, Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    POW = "^"
    CONCAT = "&"
    EQ = "="
    NE = "<>"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


COMPARISON_OPERATORS = frozenset({
    BinaryOperator.EQ,
    BinaryOperator.NE,
    BinaryOperator.LT,
    BinaryOperator.LE,
    BinaryOperator.GT,
    BinaryOperator.GE,
})


@dataclass(frozen=True)
class Literal:
    value: CellValue


@dataclass(frozen=True)
class CellRef:
    """A single cell.  ``sheet`` is None when the formula gave no prefix."""

    sheet: str | None
    row: int
    col: int


@dataclass(frozen=True)
class RangeRef:
    """A rectangle of cells; start and end may be in either order."""

    sheet: str | None
    start_row: int
    start_col: int
    end_row: int
    end_col: int

    def bounds(self) -> tuple[int, int, int, int]:
        """Normalized ``(top, left, bottom, right)``."""
        return (
            min(self.start_row, self.end_row),
            min(self.start_col, self.end_col),
            max(self.start_row, self.end_row),
            max(self.start_col, self.end_col),
        )


@dataclass(frozen=True)
class Name:
    """A defined name, resolved by the host at evaluation time."""

    name: str


@dataclass(frozen=True)
class ArrayLiteral:
    rows: tuple[tuple[CellValue, ...], ...]


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: tuple[Expr, ...] = ()


@dataclass(frozen=True)
class UnaryOp:
    op: UnaryOperator
    operand: Expr


@dataclass(frozen=True)
class BinaryOp:
    op: BinaryOperator
    left: Expr
    right: Expr


Expr = Union[Literal, CellRef, RangeRef, Name, ArrayLiteral, FunctionCall, UnaryOp, BinaryOp]
