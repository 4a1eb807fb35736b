"""Request Builder - accumulates a request through chained calls.

A builder has two states. While BUILDING, given_* calls overwrite fields and
return the builder. A terminal when_* call freezes everything into a
RequestSpec, moves the builder to SENT and executes the request. Any further
call on a SENT builder raises InvalidBuilderStateError; build a new one
instead. Reusable flows are plain functions returning a fresh builder:

    def login(user: str, password: str) -> RequestBuilder:
        return fluent_rest().given_body({"user": user, "password": password})

    login("alice", "s3cret").when_post("/login").then_expect_status(200)
    login("alice", "wrong").when_post("/login").then_expect_status(401)
"""

from __future__ import annotations

import copy
import uuid
from enum import Enum
from typing import Any, Mapping

from fluent_rest.config import current_defaults
from fluent_rest.diagnostics import Diagnostics, LogSink
from fluent_rest.errors import InvalidBuilderStateError
from fluent_rest.executor import ExecutionEngine
from fluent_rest.models import Configuration, HttpMethod, RequestSpec
from fluent_rest.path_query import PathQuery
from fluent_rest.response import ResponseWrapper
from fluent_rest.schema_validator import SchemaValidator
from fluent_rest.transport import Transport


class BuilderState(str, Enum):
    BUILDING = "building"
    SENT = "sent"


def _require_str(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")


class RequestBuilder:
    """Fluent request builder bound to one configuration snapshot.

    Use fluent_rest() rather than constructing this directly.
    """

    def __init__(
        self,
        config: Configuration,
        transport: Transport | None = None,
        validator: SchemaValidator | None = None,
        path_query: PathQuery | None = None,
        sink: LogSink | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._validator = validator
        self._path_query = path_query
        self._sink = sink
        self._state = BuilderState.BUILDING

        self._base_url = config.base_url
        self._timeout_ms = config.timeout_ms
        # Lowercased name -> (name as last written, value)
        self._headers: dict[str, tuple[str, str]] = {}
        self._query: dict[str, str] = {}
        self._authorization: str | None = None
        self._body: Any = None
        self._correlation_id: str | None = None

    def __repr__(self) -> str:
        return f"<RequestBuilder state={self._state.value} base_url={self._base_url!r}>"

    @property
    def state(self) -> BuilderState:
        return self._state

    @property
    def config(self) -> Configuration:
        """The configuration snapshot captured when this builder was created."""
        return self._config

    # -------------------------------------------------------------------------
    # Setters
    # -------------------------------------------------------------------------

    def set_base_url(self, url: str) -> RequestBuilder:
        self._check_building("set_base_url")
        _require_str("url", url)
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"base URL must start with http:// or https://, got {url!r}")
        self._base_url = url
        return self

    def given_auth(self, token: str) -> RequestBuilder:
        """Set the credential. A bare token is sent as "Bearer <token>"."""
        self._check_building("given_auth")
        _require_str("token", token)
        if not token.strip():
            raise ValueError("token must not be empty")
        self._authorization = token
        return self

    def given_body(self, payload: Any) -> RequestBuilder:
        """Set the body, replacing any previous one (no merging).

        str and bytes are sent as-is; anything else is sent as JSON.
        """
        self._check_building("given_body")
        self._body = payload
        return self

    def given_header(self, name: str, value: str) -> RequestBuilder:
        """Set a header. Names are case-insensitive; the last write wins."""
        self._check_building("given_header")
        _require_str("name", name)
        _require_str("value", value)
        if not name:
            raise ValueError("header name must not be empty")
        self._headers[name.lower()] = (name, value)
        return self

    def given_headers(self, headers: Mapping[str, str]) -> RequestBuilder:
        self._check_building("given_headers")
        for name, value in headers.items():
            self.given_header(name, value)
        return self

    def given_query(self, name: str, value: str | int | float | bool) -> RequestBuilder:
        self._check_building("given_query")
        _require_str("name", name)
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (int, float)):
            value = str(value)
        _require_str("value", value)
        self._query[name] = value
        return self

    def given_timeout(self, timeout_ms: int) -> RequestBuilder:
        """Override the configured timeout for this request only."""
        self._check_building("given_timeout")
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int):
            raise TypeError(f"timeout_ms must be an int, got {type(timeout_ms).__name__}")
        if timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")
        self._timeout_ms = timeout_ms
        return self

    def given_correlation_id(self, correlation_id: str) -> RequestBuilder:
        """Propagate an existing correlation ID instead of generating one."""
        self._check_building("given_correlation_id")
        _require_str("correlation_id", correlation_id)
        self._correlation_id = correlation_id
        return self

    # -------------------------------------------------------------------------
    # Terminal calls
    # -------------------------------------------------------------------------

    def when_get(self, path: str) -> ResponseWrapper:
        return self.when(HttpMethod.GET, path)

    def when_post(self, path: str) -> ResponseWrapper:
        return self.when(HttpMethod.POST, path)

    def when_put(self, path: str) -> ResponseWrapper:
        return self.when(HttpMethod.PUT, path)

    def when_patch(self, path: str) -> ResponseWrapper:
        return self.when(HttpMethod.PATCH, path)

    def when_delete(self, path: str) -> ResponseWrapper:
        return self.when(HttpMethod.DELETE, path)

    def when_head(self, path: str) -> ResponseWrapper:
        return self.when(HttpMethod.HEAD, path)

    def when_options(self, path: str) -> ResponseWrapper:
        return self.when(HttpMethod.OPTIONS, path)

    def when(self, method: HttpMethod | str, path: str) -> ResponseWrapper:
        """Freeze the request, send it and wrap the response.

        The builder is SENT from here on, even if sending fails.

        Raises:
            InvalidBuilderStateError: The builder was already sent, or the
                path is relative and no base URL is known.
            RequestTimeoutError: The request exceeded its timeout.
            TransportError: The request could not be delivered.
        """
        self._check_building("when")
        spec = self._freeze(HttpMethod(method.upper() if isinstance(method, str) else method), path)
        self._state = BuilderState.SENT

        diagnostics = Diagnostics(self._config, self._sink)
        engine = ExecutionEngine(self._config, self._transport, diagnostics)
        result = engine.execute(spec)
        return ResponseWrapper(result, diagnostics, self._validator, self._path_query)

    def _freeze(self, method: HttpMethod, path: str) -> RequestSpec:
        _require_str("path", path)
        if not path:
            raise ValueError("path must not be empty")
        if not path.startswith(("http://", "https://")) and not self._base_url:
            raise InvalidBuilderStateError(
                f"Cannot send relative path {path!r}: no base URL set on the builder "
                f"or in configure()"
            )

        correlation_header = self._config.correlation_header
        headers = {name: value for name, value in self._headers.values()}
        existing = self._headers.get(correlation_header.lower())
        if self._correlation_id is not None:
            correlation_id = self._correlation_id
        elif existing is not None:
            correlation_id = existing[1]
        else:
            correlation_id = uuid.uuid4().hex
        if existing is not None:
            del headers[existing[0]]
        headers[correlation_header] = correlation_id

        return RequestSpec(
            method=method,
            path=path,
            base_url=self._base_url,
            headers=headers,
            query=dict(self._query),
            authorization=self._authorization,
            body=copy.deepcopy(self._body),
            timeout_ms=self._timeout_ms,
            correlation_id=correlation_id,
        )

    def _check_building(self, operation: str) -> None:
        if self._state is not BuilderState.BUILDING:
            raise InvalidBuilderStateError(
                f"{operation}() called on a builder that was already sent; "
                f"create a new builder with fluent_rest() for another request"
            )


def fluent_rest(
    *,
    config: Configuration | None = None,
    transport: Transport | None = None,
    validator: SchemaValidator | None = None,
    path_query: PathQuery | None = None,
    sink: LogSink | None = None,
) -> RequestBuilder:
    """Start a new request.

    Args:
        config: Configuration to use. Defaults to a snapshot of
            current_defaults() taken now.
        transport: HTTP collaborator. Defaults to HttpxTransport.
        validator: Schema validation collaborator. Defaults to JsonSchemaValidator.
        path_query: JSONPath collaborator. Defaults to JsonPathQuery.
        sink: Log sink. Defaults to the "fluent_rest" logger.
    """
    return RequestBuilder(
        config if config is not None else current_defaults(),
        transport=transport,
        validator=validator,
        path_query=path_query,
        sink=sink,
    )
