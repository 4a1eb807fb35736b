"""Diagnostics - leveled structured logging and failure snapshots.

Records are plain dicts handed to a LogSink. The default sink serializes them
as JSON onto the "fluent_rest" logger, tagged with the destination (stderr or
a file) of the configuration it was created with. Each destination has its
own handler that only accepts records tagged for it, so a builder keeps its
level and destination whatever configure() does afterwards.

Header values whose names look like credentials are masked before anything
is logged or snapshotted, whatever the log level.
"""

from __future__ import annotations

import copy
import json
import logging
import re
import threading
from typing import TYPE_CHECKING, Any, Protocol

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError

from fluent_rest.models import Configuration, DiagnosticSnapshot, LogLevel

if TYPE_CHECKING:
    from fluent_rest.models import RequestSpec, ResponseResult

LOGGER_NAME = "fluent_rest"
REDACTED = "[REDACTED]"

# Header names treated as secrets, matched anywhere in the name
_SECRET_HEADER_PATTERN = re.compile(
    r"authorization|cookie|token|secret|password|api[-_]?key|session|credential",
    re.IGNORECASE,
)

MAX_SNAPSHOT_HEADERS = 50
MAX_HEADER_VALUE_LENGTH = 256
MAX_BODY_EXCERPT_LENGTH = 1000

_LEVEL_NUMBERS = {
    "debug": logging.DEBUG,
    "error": logging.ERROR,
}

CONSOLE_DESTINATION = "<console>"

# Level gating happens in Diagnostics against each builder's own snapshot
logger = logging.getLogger(LOGGER_NAME)
logger.addHandler(logging.NullHandler())
logger.setLevel(logging.DEBUG)

_handlers_lock = threading.Lock()


def destination_for(config: Configuration) -> str:
    """The log file path, or CONSOLE_DESTINATION when logging to stderr."""
    return config.log_file if config.log_to_file else CONSOLE_DESTINATION


class LogSink(Protocol):
    """Where diagnostic records go."""

    def write(self, level: str, record: dict[str, Any]) -> None: ...


class LoggingSink:
    """Writes records as JSON to a stdlib logger.

    When created with a configuration, records are tagged with its
    destination and the matching handler is installed if missing.
    """

    def __init__(
        self,
        config: Configuration | None = None,
        target: logging.Logger | None = None,
    ) -> None:
        self._logger = target or logger
        self._destination: str | None = None
        if config is not None:
            setup_logging(config)
            self._destination = destination_for(config)

    def write(self, level: str, record: dict[str, Any]) -> None:
        self._logger.log(
            _LEVEL_NUMBERS.get(level, logging.INFO),
            json.dumps(record, default=str, sort_keys=True),
            extra={"fluent_rest_destination": self._destination},
        )


# =============================================================================
# Logging setup
# =============================================================================


class _FluentRestHandlerMixin:
    """Marks handlers installed by setup_logging."""

    destination: str


class _StreamHandler(_FluentRestHandlerMixin, logging.StreamHandler):
    pass


class _FileHandler(_FluentRestHandlerMixin, logging.FileHandler):
    pass


class _DestinationFilter(logging.Filter):
    """Accepts only records tagged for one destination."""

    def __init__(self, destination: str) -> None:
        super().__init__()
        self.destination = destination

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "fluent_rest_destination", None) == self.destination


def setup_logging(config: Configuration) -> logging.Handler:
    """Install the console or file handler selected by config, if missing.

    Handlers for other destinations stay installed so builders created
    under earlier configurations keep writing where they did.
    """
    destination = destination_for(config)
    with _handlers_lock:
        for existing in logger.handlers:
            if isinstance(existing, _FluentRestHandlerMixin) and existing.destination == destination:
                return existing

        handler: logging.Handler
        if config.log_to_file:
            handler = _FileHandler(config.log_file, encoding="utf-8", delay=True)
        else:
            handler = _StreamHandler()
        handler.destination = destination
        handler.addFilter(_DestinationFilter(destination))
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(handler)
        return handler


def teardown_logging() -> None:
    """Remove every handler installed by setup_logging."""
    with _handlers_lock:
        for handler in list(logger.handlers):
            if isinstance(handler, _FluentRestHandlerMixin):
                logger.removeHandler(handler)
                handler.close()


# =============================================================================
# Redaction
# =============================================================================


def is_secret_header(name: str, extra_names: tuple[str, ...] | list[str] = ()) -> bool:
    """True if a header name matches the secret naming convention or extra_names."""
    if _SECRET_HEADER_PATTERN.search(name):
        return True
    return name.lower() in {n.lower() for n in extra_names}


def redact_headers(
    headers: dict[str, Any],
    extra_names: tuple[str, ...] | list[str] = (),
) -> dict[str, str]:
    """Mask secret header values, then truncate.

    List values (repeated response headers) are joined with ", ".
    """
    redacted: dict[str, str] = {}
    for name, value in list(headers.items())[:MAX_SNAPSHOT_HEADERS]:
        if is_secret_header(name, extra_names):
            redacted[name] = REDACTED
            continue
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        value = str(value)
        if len(value) > MAX_HEADER_VALUE_LENGTH:
            value = value[:MAX_HEADER_VALUE_LENGTH] + "..."
        redacted[name] = value
    return redacted


def redact_body(body: Any, jsonpaths: tuple[str, ...] | list[str]) -> Any:
    """Return a copy of body with every field matched by jsonpaths masked.

    Invalid JSONPaths are ignored.
    """
    if not jsonpaths or not isinstance(body, (dict, list)):
        return body

    data = copy.deepcopy(body)
    for path in jsonpaths:
        try:
            compiled = jsonpath_parse(path)
        except (JsonPathLexerError, JsonPathParserError):
            continue
        if compiled.find(data):
            data = compiled.update(data, REDACTED)
    return data


def _body_excerpt(body: Any, jsonpaths: tuple[str, ...]) -> str | None:
    if body is None:
        return None
    body = redact_body(body, jsonpaths)
    text = body if isinstance(body, str) else json.dumps(body, default=str)
    if len(text) > MAX_BODY_EXCERPT_LENGTH:
        text = text[:MAX_BODY_EXCERPT_LENGTH] + "..."
    return text


# =============================================================================
# Diagnostics
# =============================================================================


class Diagnostics:
    """Per-builder diagnostics bound to one configuration snapshot.

    Usage:
        diagnostics = Diagnostics(config)
        diagnostics.log_request(spec)
        ...
        snapshot = diagnostics.snapshot("assertion", error, spec, result)
    """

    def __init__(self, config: Configuration, sink: LogSink | None = None) -> None:
        self._config = config
        self._sink = sink or LoggingSink(config)
        self.snapshots: list[DiagnosticSnapshot] = []

    @property
    def last_snapshot(self) -> DiagnosticSnapshot | None:
        return self.snapshots[-1] if self.snapshots else None

    def enabled(self, level: str) -> bool:
        """Whether records at level pass the configured log level."""
        if self._config.log_level == LogLevel.SILENT:
            return False
        if self._config.log_level == LogLevel.ERROR:
            return level == "error"
        return True

    def write(self, level: str, record: dict[str, Any]) -> None:
        if self.enabled(level):
            self._sink.write(level, record)

    def log_request(self, spec: RequestSpec) -> None:
        if not self.enabled("debug"):
            return
        self.write("debug", {
            "event": "request.sent",
            "method": spec.method.value,
            "url": spec.url,
            "path": spec.path,
            "correlation_id": spec.correlation_id,
            "timeout_ms": spec.timeout_ms,
            "headers": redact_headers(spec.effective_headers(), self._config.redact_headers),
        })

    def log_response(self, result: ResponseResult) -> None:
        if not self.enabled("debug"):
            return
        self.write("debug", {
            "event": "response.received",
            "method": result.request.method.value,
            "path": result.request.path,
            "status_code": result.status_code,
            "correlation_id": result.correlation_id,
            "elapsed_ms": round(result.elapsed_ms, 3),
        })

    def snapshot(
        self,
        reason: str,
        error: BaseException,
        spec: RequestSpec,
        result: ResponseResult | None = None,
        elapsed_ms: float | None = None,
    ) -> DiagnosticSnapshot:
        """Record what is known about a failed exchange and write it at error level."""
        extra_names = self._config.redact_headers
        snapshot = DiagnosticSnapshot(
            reason=reason,
            error_type=type(error).__name__,
            error_message=str(error),
            method=spec.method.value,
            url=spec.url,
            correlation_id=spec.correlation_id,
            status_code=result.status_code if result is not None else None,
            elapsed_ms=result.elapsed_ms if result is not None else elapsed_ms,
            request_headers=redact_headers(spec.effective_headers(), extra_names),
            response_headers=redact_headers(result.headers, extra_names) if result is not None else {},
            body_excerpt=_body_excerpt(result.body, self._config.redact_fields) if result is not None else None,
        )
        self.snapshots.append(snapshot)
        self.write("error", {"event": "failure.snapshot", **snapshot.model_dump()})
        return snapshot
