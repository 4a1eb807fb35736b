"""Internal data models for fluent-rest.

All models use Pydantic v2 and are frozen: a RequestSpec is fixed once the
terminal call is made, and a ResponseResult never changes after the engine
builds it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HttpMethod(str, Enum):
    """Supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class LogLevel(str, Enum):
    """How much the diagnostics layer writes to the log sink."""

    SILENT = "silent"  # Nothing is written; snapshots are still recorded
    ERROR = "error"  # Failure snapshots only
    DEBUG = "debug"  # Every exchange plus failure snapshots


# =============================================================================
# Configuration
# =============================================================================


DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_LOG_FILE = "fluent_rest.log"
DEFAULT_CORRELATION_HEADER = "X-Correlation-ID"


class Configuration(BaseModel):
    """Process-wide defaults, captured by each builder when it is created."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str | None = Field(default=None, description="Base URL for relative paths")
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0, description="Request timeout in milliseconds")
    log_level: LogLevel = Field(default=LogLevel.ERROR, description="Diagnostics verbosity")
    log_to_file: bool = Field(default=False, description="Write logs to log_file instead of stderr")
    log_file: str = Field(default=DEFAULT_LOG_FILE, description="Log file path when log_to_file is set")
    redact_headers: tuple[str, ...] = Field(
        default=(), description="Header names masked in addition to the built-in convention"
    )
    redact_fields: tuple[str, ...] = Field(
        default=(), description="JSONPaths of body fields masked in diagnostic snapshots"
    )
    correlation_header: str = Field(
        default=DEFAULT_CORRELATION_HEADER, description="Header carrying the correlation ID"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v


# =============================================================================
# Request / Response
# =============================================================================


class RequestSpec(BaseModel):
    """A fully determined request, frozen at the builder's terminal call.

    Header keys keep the casing of their last write; lookups elsewhere are
    case-insensitive.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: HttpMethod
    path: str = Field(description="Path relative to base_url, or an absolute URL")
    base_url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    query: dict[str, str] = Field(default_factory=dict)
    authorization: str | None = Field(default=None, description="Opaque credential")
    body: Any = None
    timeout_ms: int = Field(gt=0)
    correlation_id: str

    @property
    def url(self) -> str:
        """Absolute URL: base_url joined with path, unless path is already absolute."""
        if self.path.startswith(("http://", "https://")) or not self.base_url:
            return self.path
        return self.base_url.rstrip("/") + "/" + self.path.lstrip("/")

    def effective_headers(self) -> dict[str, str]:
        """Headers as sent, with the credential rendered into Authorization.

        The credential replaces any Authorization header set directly.
        """
        headers = dict(self.headers)
        if self.authorization is not None:
            for key in [k for k in headers if k.lower() == "authorization"]:
                del headers[key]
            headers["Authorization"] = render_authorization(self.authorization)
        return headers


def render_authorization(credential: str) -> str:
    """A bare token becomes a Bearer credential; one with a scheme passes through."""
    if " " in credential.strip():
        return credential
    return f"Bearer {credential}"


class ResponseResult(BaseModel):
    """One HTTP response, as seen by the caller.

    Header keys are lowercase. Header values are arrays for repeated headers.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int
    headers: dict[str, list[str]] = Field(default_factory=dict)
    body: Any = Field(default=None, description="Body as JSON value or text if parseable")
    body_base64: str | None = Field(default=None, description="Body as base64 if binary")
    elapsed_ms: float
    correlation_id: str
    request: RequestSpec

    def header(self, name: str) -> str | None:
        """First value of a header, case-insensitive."""
        values = self.headers.get(name.lower())
        return values[0] if values else None


# =============================================================================
# Validation
# =============================================================================


class Violation(BaseModel):
    """A single field-level schema violation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str = Field(description="JSONPath to the violating field, e.g. $.id")
    message: str
    violation_type: str = Field(default="validation_error")


class ValidationResult(BaseModel):
    """Normalized outcome of a schema validation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    valid: bool
    violations: list[Violation] = Field(default_factory=list)


# =============================================================================
# Diagnostics
# =============================================================================


class DiagnosticSnapshot(BaseModel):
    """What was known about an exchange when something failed.

    Header values are already redacted and truncated.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    reason: str = Field(description="What triggered the snapshot, e.g. assertion or catch_and_log")
    error_type: str
    error_message: str
    method: str
    url: str
    correlation_id: str
    status_code: int | None = None
    elapsed_ms: float | None = None
    request_headers: dict[str, str] = Field(default_factory=dict)
    response_headers: dict[str, str] = Field(default_factory=dict)
    body_excerpt: str | None = None
