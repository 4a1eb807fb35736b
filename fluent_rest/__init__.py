"""fluent-rest: a fluent builder/assertion DSL for exercising HTTP APIs in tests.

    from fluent_rest import configure, fluent_rest

    configure(base_url="http://localhost:8000", timeout_ms=5000)

    response = fluent_rest().given_auth(token).given_body({"name": "w"}).when_post("/widgets")
    widget_id = response.then_expect_status(201).then_validate_body(WIDGET).then_extract("$.id")
"""

from fluent_rest.builder import BuilderState, RequestBuilder, fluent_rest
from fluent_rest.config import (
    configure,
    configure_from_file,
    current_defaults,
    load_config,
    reset_defaults,
    restore_defaults,
)
from fluent_rest.diagnostics import Diagnostics, LoggingSink, LogSink
from fluent_rest.errors import (
    ConfigurationError,
    ExtractionError,
    FluentRestError,
    HeaderAssertionError,
    InvalidBuilderStateError,
    RequestTimeoutError,
    ResponseAssertionError,
    SchemaValidationError,
    StatusAssertionError,
    TransportError,
)
from fluent_rest.models import (
    Configuration,
    DiagnosticSnapshot,
    HttpMethod,
    LogLevel,
    RequestSpec,
    ResponseResult,
    ValidationResult,
    Violation,
)
from fluent_rest.response import ResponseWrapper
from fluent_rest.schema_validator import JsonSchemaValidator, OpenApiSchemaSource, load_schema
from fluent_rest.transport import HttpxTransport, Transport, TransportRequest, TransportResponse

__version__ = "0.1.0"

__all__ = [
    "BuilderState",
    "Configuration",
    "ConfigurationError",
    "DiagnosticSnapshot",
    "Diagnostics",
    "ExtractionError",
    "FluentRestError",
    "HeaderAssertionError",
    "HttpMethod",
    "HttpxTransport",
    "InvalidBuilderStateError",
    "JsonSchemaValidator",
    "LogLevel",
    "LogSink",
    "LoggingSink",
    "OpenApiSchemaSource",
    "RequestBuilder",
    "RequestSpec",
    "RequestTimeoutError",
    "ResponseAssertionError",
    "ResponseResult",
    "ResponseWrapper",
    "SchemaValidationError",
    "StatusAssertionError",
    "Transport",
    "TransportError",
    "TransportRequest",
    "TransportResponse",
    "ValidationResult",
    "Violation",
    "configure",
    "configure_from_file",
    "current_defaults",
    "fluent_rest",
    "load_config",
    "load_schema",
    "reset_defaults",
    "restore_defaults",
]
