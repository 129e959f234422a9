"""Web formula functions: ENCODEURL, WEBSERVICE, FILTERXML.

These run only when ``web_functions`` is enabled in the evaluator config.
Otherwise every call gives ``#NAME?``, as if the functions did not exist.
"""

from __future__ import annotations

import functools
import xml.etree.ElementTree as ET
from typing import Any, Callable
from urllib.parse import quote, urlsplit

from sheetcalc.formulas.arguments import check_arity, text
from sheetcalc.formulas.coercion import parse_number_text
from sheetcalc.formulas.errors import FormulaFunctionError, WebFetchError
from sheetcalc.formulas.values import CellValue, Error, Float, RangeValue, String
from sheetcalc.logging import EventType, emit_error, emit_info, emit_warning
from sheetcalc.logging.events import (
    WEB_BAD_SCHEME,
    WEB_DISABLED,
    WEB_FETCH_FAILED,
    WEB_RESPONSE_TOO_LARGE,
    WEB_URL_TOO_LONG,
)

WEB_DISABLED_ERROR = Error("#NAME? web functions are not available", "#NAME?")


def _requires_web(func_name: str) -> Callable:
    """Return ``#NAME?`` instead of calling *fn* while web functions are off."""

    def decorate(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(args: list, scope: Any) -> Any:
            if not scope.config.web_functions:
                emit_warning(
                    EventType.webservice_blocked,
                    f"{func_name} called while web functions are disabled",
                    {"function": func_name, "sheet": scope.current_sheet},
                    error_code=WEB_DISABLED,
                )
                return WEB_DISABLED_ERROR
            return fn(args, scope)

        return wrapper

    return decorate


@_requires_web("ENCODEURL")
def _fn_encodeurl(args: list, scope: Any) -> String:
    """ENCODEURL(text) -- percent-encode everything except unreserved characters."""
    check_arity("ENCODEURL", args, 1)
    return String(quote(text(args, 0, "ENCODEURL"), safe=""))


def _blocked(url: str, message: str, code: str) -> FormulaFunctionError:
    emit_warning(
        EventType.webservice_blocked,
        message,
        {"function": "WEBSERVICE", "url": url},
        error_code=code,
    )
    return FormulaFunctionError("WEBSERVICE", f"WEBSERVICE: {message}")


@_requires_web("WEBSERVICE")
def _fn_webservice(args: list, scope: Any) -> String:
    """WEBSERVICE(url) -- body of an http(s) GET as text."""
    check_arity("WEBSERVICE", args, 1)
    url = text(args, 0, "WEBSERVICE").strip()
    config = scope.config
    if len(url) > config.webservice_max_url_length:
        raise _blocked(
            url[:64],
            f"URL exceeds {config.webservice_max_url_length} characters",
            WEB_URL_TOO_LONG,
        )
    if urlsplit(url).scheme.lower() not in ("http", "https"):
        raise _blocked(url, "only http and https URLs are allowed", WEB_BAD_SCHEME)

    try:
        body = scope.fetch(url)
    except WebFetchError as exc:
        emit_error(
            EventType.webservice_failed,
            f"WEBSERVICE request failed: {exc}",
            {"function": "WEBSERVICE", "url": url},
            error_code=WEB_FETCH_FAILED,
        )
        raise FormulaFunctionError("WEBSERVICE", "WEBSERVICE: request failed") from exc

    if len(body) > config.webservice_max_response_chars:
        emit_error(
            EventType.webservice_failed,
            f"WEBSERVICE response exceeds {config.webservice_max_response_chars} characters",
            {"function": "WEBSERVICE", "url": url, "chars": len(body)},
            error_code=WEB_RESPONSE_TOO_LARGE,
        )
        raise FormulaFunctionError("WEBSERVICE", "WEBSERVICE: response is too large")

    emit_info(
        EventType.webservice_fetch,
        "WEBSERVICE fetched a response",
        {"function": "WEBSERVICE", "url": url, "chars": len(body)},
    )
    return String(body)


# ---------------------------------------------------------------------------
# FILTERXML
# ---------------------------------------------------------------------------


def _split_xpath(xpath: str) -> tuple[str, str | None, bool]:
    """(element path, attribute name, text-only flag) for a limited XPath."""
    path, attribute, text_only = xpath.strip(), None, False
    if path.endswith("/text()"):
        path, text_only = path[: -len("/text()")], True
    elif "/@" in path:
        path, attribute = path.rsplit("/@", 1)
    if path in ("", "/"):
        return ".//*", attribute, text_only
    if path.startswith("//"):
        return "." + path, attribute, text_only
    if path.startswith("/"):
        return "." + path, attribute, text_only
    return "./" + path, attribute, text_only


def _node_value(raw: str) -> CellValue:
    n = parse_number_text(raw)
    return String(raw) if n is None else Float(n)


def filter_xml(document: str, xpath: str) -> list[str]:
    """Text of every node *xpath* selects in *document*.

    Raises:
        ValueError: If the document is not well-formed or the path is not
            supported.
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        raise ValueError(f"invalid XML: {exc}") from exc
    holder = ET.Element("document")
    holder.append(root)
    path, attribute, text_only = _split_xpath(xpath)
    try:
        nodes = holder.findall(path)
    except (SyntaxError, KeyError) as exc:
        raise ValueError(f"unsupported XPath {xpath!r}") from exc

    hits: list[str] = []
    for node in nodes:
        if attribute is not None:
            value = node.get(attribute)
            if value is not None:
                hits.append(value)
        elif text_only:
            if node.text is not None:
                hits.append(node.text)
        else:
            hits.append("".join(node.itertext()))
    return hits


@_requires_web("FILTERXML")
def _fn_filterxml(args: list, scope: Any) -> CellValue | RangeValue:
    """FILTERXML(xml, xpath) -- one hit is a value, several are a column."""
    check_arity("FILTERXML", args, 2)
    try:
        hits = filter_xml(text(args, 0, "FILTERXML"), text(args, 1, "FILTERXML"))
    except ValueError as exc:
        raise FormulaFunctionError("FILTERXML", f"FILTERXML: {exc}") from exc
    if not hits:
        raise FormulaFunctionError("FILTERXML", "FILTERXML: no nodes matched")
    if len(hits) == 1:
        return _node_value(hits[0])
    return RangeValue.column_of([_node_value(h) for h in hits])


WEB_FUNCTIONS: dict[str, Any] = {
    "ENCODEURL": _fn_encodeurl,
    "WEBSERVICE": _fn_webservice,
    "FILTERXML": _fn_filterxml,
}
