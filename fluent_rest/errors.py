"""Error taxonomy for fluent-rest.

Configuration and builder errors are programmer errors and fail fast.
Transport and timeout errors surface network trouble with the original cause
attached. Assertion errors subclass AssertionError so test runners report them
as test failures, and always carry expected-vs-actual detail.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fluent_rest.models import DiagnosticSnapshot, Violation


class FluentRestError(Exception):
    """Base class for all fluent-rest errors."""


class ConfigurationError(FluentRestError):
    """Raised when configure() receives invalid settings."""


class InvalidBuilderStateError(FluentRestError):
    """Raised when a builder is used after its terminal call."""


class TransportError(FluentRestError):
    """Raised when the request could not be delivered (DNS, connect, TLS, ...).

    Attributes:
        cause: The exception raised by the transport.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RequestTimeoutError(FluentRestError):
    """Raised when a request does not complete within its timeout.

    Attributes:
        timeout_ms: The timeout the request ran under.
        elapsed_ms: Time spent before giving up, if measured.
        cancelled: True if the in-flight transport call was cancelled.
    """

    def __init__(
        self,
        message: str,
        timeout_ms: int,
        elapsed_ms: float | None = None,
        cancelled: bool = False,
    ) -> None:
        super().__init__(message)
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        self.cancelled = cancelled


# =============================================================================
# Assertion Errors
# =============================================================================


class ResponseAssertionError(FluentRestError, AssertionError):
    """Base class for failed response assertions.

    The diagnostic snapshot recorded when the assertion failed is attached as
    ``snapshot``.
    """

    snapshot: DiagnosticSnapshot | None = None


class StatusAssertionError(ResponseAssertionError):
    """Response status did not match the expected code(s)."""

    def __init__(self, expected: int | tuple[int, ...], actual: int) -> None:
        if isinstance(expected, tuple):
            wanted = "one of " + ", ".join(str(code) for code in expected)
        else:
            wanted = str(expected)
        super().__init__(f"Expected status {wanted}, got {actual}")
        self.expected = expected
        self.actual = actual


class HeaderAssertionError(ResponseAssertionError):
    """Response header was missing or had an unexpected value."""

    def __init__(self, name: str, expected: str | None, actual: str | None) -> None:
        if actual is None:
            message = f"Expected header '{name}' to be present"
        else:
            message = f"Expected header '{name}' to be {expected!r}, got {actual!r}"
        super().__init__(message)
        self.name = name
        self.expected = expected
        self.actual = actual


class SchemaValidationError(ResponseAssertionError):
    """Response body violated a schema. Carries every violation found."""

    def __init__(self, violations: list[Violation], message: str | None = None) -> None:
        if message is None:
            lines = [f"  {v.path}: {v.message}" for v in violations]
            message = f"Body failed schema validation with {len(violations)} violation(s):\n" + "\n".join(lines)
        super().__init__(message)
        self.violations = violations


class ExtractionError(ResponseAssertionError):
    """A required extraction matched nothing, or the expression is invalid."""

    def __init__(self, expression: str, message: str | None = None, document: Any = None) -> None:
        super().__init__(message or f"JSONPath '{expression}' matched nothing in response body")
        self.expression = expression
        self.document = document
