"""Host-side collaborator interface for the evaluator.

The evaluator never owns cell storage.  It asks an ``EvaluationContext`` for
cell and range values, for the position of the formula being evaluated, and
for HTTP bodies when WEBSERVICE runs.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from sheetcalc.formulas.errors import WebFetchError
from sheetcalc.formulas.values import CellValue, RangeValue

logger = logging.getLogger(__name__)


@runtime_checkable
class EvaluationContext(Protocol):
    """Protocol the host implements to feed the evaluator.

    Optional extras, looked up with ``getattr``:

    - ``resolve_name(sheet, name)`` returning a ``CellRef``/``RangeRef`` or None
    - ``now()`` returning a ``datetime.datetime`` for TODAY/NOW
    """

    def get_cell(self, sheet: str, row: int, col: int) -> CellValue:
        """Value of one cell.  Raises ``FormulaRefError`` for unknown sheets."""
        ...

    def get_range(
        self, sheet: str, start_row: int, start_col: int, end_row: int, end_col: int
    ) -> RangeValue:
        """Row-major values of a normalized rectangle."""
        ...

    def current_position(self) -> tuple[str, int, int] | None:
        """(sheet, row, col) of the formula being evaluated, if known."""
        ...

    def http_fetch(self, url: str) -> str:
        """Body of a GET request.  Raises ``WebFetchError`` on any failure."""
        ...


class HttpFetcher:
    """Blocking GET fetcher used for WEBSERVICE.

    Streams the body and stops once ``max_bytes`` is exceeded so an
    oversized response never has to be held in memory.
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        max_bytes: int = 32767 * 4,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self._transport = transport

    def fetch(self, url: str) -> str:
        try:
            with httpx.Client(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                with client.stream("GET", url) as response:
                    response.raise_for_status()
                    chunks: list[bytes] = []
                    total = 0
                    for chunk in response.iter_bytes():
                        total += len(chunk)
                        if total > self.max_bytes:
                            raise WebFetchError(f"response exceeds {self.max_bytes} bytes")
                        chunks.append(chunk)
                    encoding = response.encoding or "utf-8"
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as exc:
            logger.debug("fetch of %s failed: %s", url, exc)
            raise WebFetchError(str(exc)) from exc
        return b"".join(chunks).decode(encoding, errors="replace")

    __call__ = fetch
