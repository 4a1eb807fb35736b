"""Response Wrapper - assertions, validation and extraction over one response.

Nothing here runs implicitly: each then_* call is made by the caller. Every
assertion failure records a diagnostic snapshot before it is raised, and
catch_and_log() does the same for arbitrary failures inside a block.

Extraction has two explicit modes:
    then_extract(expr)           required; raises ExtractionError on no match
    then_extract_optional(expr)  optional; returns a default on no match
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Iterable, TypeVar

from fluent_rest.diagnostics import Diagnostics
from fluent_rest.errors import (
    ExtractionError,
    HeaderAssertionError,
    ResponseAssertionError,
    SchemaValidationError,
    StatusAssertionError,
)
from fluent_rest.models import ResponseResult, Violation
from fluent_rest.path_query import JSONPathError, JsonPathQuery, PathQuery
from fluent_rest.schema_validator import JsonSchemaValidator, OpenApiSchemaSource, SchemaValidator

T = TypeVar("T")


class ResponseWrapper:
    """Read-only view of one ResponseResult with chainable assertions.

    Usage:
        response = fluent_rest().given_auth(token).when_get("/widgets/1")
        widget_id = (
            response.then_expect_status(200)
            .then_validate_body(WIDGET_SCHEMA)
            .then_extract("$.id")
        )
    """

    def __init__(
        self,
        result: ResponseResult,
        diagnostics: Diagnostics,
        validator: SchemaValidator | None = None,
        path_query: PathQuery | None = None,
    ) -> None:
        self._result = result
        self._diagnostics = diagnostics
        self._validator = validator or JsonSchemaValidator()
        self._path_query = path_query or JsonPathQuery()

    def __repr__(self) -> str:
        request = self._result.request
        return f"<ResponseWrapper {request.method.value} {request.path} -> {self._result.status_code}>"

    @property
    def result(self) -> ResponseResult:
        return self._result

    @property
    def status_code(self) -> int:
        return self._result.status_code

    @property
    def headers(self) -> dict[str, list[str]]:
        return self._result.headers

    @property
    def body(self) -> Any:
        """A copy of the response body; mutating it leaves the result intact."""
        return copy.deepcopy(self._result.body)

    @property
    def elapsed_ms(self) -> float:
        return self._result.elapsed_ms

    @property
    def correlation_id(self) -> str:
        return self._result.correlation_id

    @property
    def diagnostics(self) -> Diagnostics:
        return self._diagnostics

    # -------------------------------------------------------------------------
    # Assertions
    # -------------------------------------------------------------------------

    def then_expect_status(self, code: int) -> ResponseWrapper:
        """Assert the status code equals code."""
        if self._result.status_code != code:
            raise self._record(StatusAssertionError(expected=code, actual=self._result.status_code))
        return self

    def then_expect_status_in(self, codes: Iterable[int]) -> ResponseWrapper:
        """Assert the status code is one of codes."""
        expected = tuple(codes)
        if self._result.status_code not in expected:
            raise self._record(StatusAssertionError(expected=expected, actual=self._result.status_code))
        return self

    def then_expect_header(self, name: str, value: str | None = None) -> ResponseWrapper:
        """Assert a header is present and, if value is given, equals it."""
        actual = self._result.header(name)
        if actual is None or (value is not None and actual != value):
            raise self._record(HeaderAssertionError(name=name, expected=value, actual=actual))
        return self

    def then_validate_body(self, schema: Any) -> ResponseWrapper:
        """Validate the body against a JSON Schema mapping or pydantic model class.

        Raises SchemaValidationError carrying every violation found.
        """
        outcome = self._validator.validate(schema, self._result.body)
        if not outcome.valid:
            raise self._record(SchemaValidationError(outcome.violations))
        return self

    def then_validate_openapi(self, source: OpenApiSchemaSource, operation_id: str) -> ResponseWrapper:
        """Validate the body against the OpenAPI response schema for the actual status."""
        schema = source.response_schema(operation_id, self._result.status_code)
        if schema is None:
            violation = Violation(
                path="$",
                message=f"No response schema for operation '{operation_id}' "
                        f"and status {self._result.status_code}",
                violation_type="undocumented_response",
            )
            raise self._record(SchemaValidationError([violation]))
        return self.then_validate_body(schema)

    # -------------------------------------------------------------------------
    # Extraction
    # -------------------------------------------------------------------------

    def then_extract(self, expression: str) -> Any:
        """Return the first value matched by a JSONPath expression.

        Raises ExtractionError if nothing matches.
        """
        matches = self._query(expression)
        if not matches:
            raise self._record(ExtractionError(expression, document=self.body))
        return matches[0]

    def then_extract_optional(self, expression: str, default: Any = None) -> Any:
        """Return the first value matched by expression, or default."""
        matches = self._query(expression)
        return matches[0] if matches else default

    def then_extract_all(self, expression: str) -> list[Any]:
        """Return every value matched by expression (possibly empty)."""
        return self._query(expression)

    def _query(self, expression: str) -> list[Any]:
        """Matched values, copied so callers cannot reach into the result."""
        try:
            return copy.deepcopy(self._path_query.query(expression, self._result.body))
        except JSONPathError as e:
            error = ExtractionError(expression, message=str(e), document=self.body)
            raise self._record(error) from e

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def catch_and_log(self, block: Callable[[], T]) -> T:
        """Run block; on failure record a snapshot and re-raise the same exception.

        Returns whatever block returns.
        """
        try:
            return block()
        except Exception as e:
            snapshot = getattr(e, "snapshot", None) if isinstance(e, ResponseAssertionError) else None
            if snapshot is None:
                snapshot = self._diagnostics.snapshot(
                    "catch_and_log", e, self._result.request, self._result
                )
            e.add_note(
                f"fluent-rest: {snapshot.method} {snapshot.url} -> {snapshot.status_code} "
                f"(correlation_id={snapshot.correlation_id})"
            )
            raise

    def _record(self, error: ResponseAssertionError) -> ResponseAssertionError:
        """Attach a diagnostic snapshot to an assertion error about to be raised."""
        error.snapshot = self._diagnostics.snapshot(
            "assertion", error, self._result.request, self._result
        )
        return error
