"""Error types for formula parsing and evaluation.

Parse failures are raised.  Run-time failures are carried as ``Error``
cell values; the exceptions below that are raised during evaluation are
converted to ``Error`` values at the function-dispatch boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sheetcalc.formulas.values import Error


class FormulaError(Exception):
    """Base class for all formula-related errors."""


class FormulaParseError(FormulaError):
    """Syntax error in a formula expression.

    Attributes:
        position: Character position where the error was detected.
        message: Human-readable description.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        self.message = message
        full = f"Formula parse error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class FormulaRefError(FormulaError):
    """Reference to an unknown sheet or defined name.

    Attributes:
        ref_name: The unresolved reference.
        available: Names that are currently available.
    """

    def __init__(self, ref_name: str, available: list[str] | None = None) -> None:
        self.ref_name = ref_name
        self.available = available or []
        msg = f"Unknown reference: {ref_name!r}"
        if self.available:
            msg += f". Available: {self.available}"
        super().__init__(msg)


class FormulaFunctionError(FormulaError):
    """A function rejected its arguments.

    Attributes:
        func_name: The function that caused the error.
        code: Spreadsheet error code for the resulting ``Error`` value.
    """

    def __init__(self, func_name: str, message: str | None = None, code: str = "#VALUE!") -> None:
        self.func_name = func_name
        self.code = code
        self.message = message or f"Unknown function: {func_name!r}"
        super().__init__(self.message)


class CellValueError(FormulaError):
    """Carries an ``Error`` cell value out of a nested coercion.

    Raised by coercion helpers when they meet an error operand so that the
    enclosing function returns that error unchanged.
    """

    def __init__(self, error: Error) -> None:
        self.error = error
        super().__init__(error.message)


class WebFetchError(FormulaError):
    """An HTTP fetch for WEBSERVICE failed or was refused."""
