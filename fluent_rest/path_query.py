"""Path query - JSONPath lookups over response bodies, backed by jsonpath-ng."""

from __future__ import annotations

from typing import Any, Protocol

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError


class JSONPathError(Exception):
    """Raised when a JSONPath expression cannot be parsed."""


class PathQuery(Protocol):
    def query(self, expression: str, document: Any) -> list[Any]: ...


class JsonPathQuery:
    """Evaluates JSONPath expressions, caching compiled paths."""

    def __init__(self) -> None:
        self._cache: dict[str, Any] = {}

    def query(self, expression: str, document: Any) -> list[Any]:
        """Return all values matched by expression, in document order.

        Raises:
            JSONPathError: If expression is syntactically invalid.
        """
        if expression not in self._cache:
            try:
                self._cache[expression] = jsonpath_parse(expression)
            except (JsonPathLexerError, JsonPathParserError) as e:
                raise JSONPathError(f"Invalid JSONPath '{expression}': {e}") from e

        return [match.value for match in self._cache[expression].find(document)]
