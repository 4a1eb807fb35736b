"""Transport - the HTTP collaborator the Execution Engine sends through.

Any object with a matching send() can stand in for HttpxTransport. A transport
either returns a TransportResponse or raises; it should stop work early once
request.cancelled is set, and may raise RequestTimeoutError itself when its
own timeout fires.
"""

from __future__ import annotations

import base64
import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from fluent_rest.errors import RequestTimeoutError


@dataclass
class TransportRequest:
    """Everything a transport needs to send one request.

    Attributes:
        method: HTTP method, upper case.
        url: Absolute URL.
        headers: Headers as sent (Authorization already rendered).
        query: Query parameters.
        body: Payload; str/bytes are sent raw, anything else as JSON.
        timeout_ms: Deadline for the whole exchange.
        cancelled: Set by the engine when the deadline passes.
    """

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    body: Any = None
    timeout_ms: int = 30_000
    cancelled: threading.Event = field(default_factory=threading.Event)


@dataclass
class TransportResponse:
    """Raw result of a transport call. Header keys are lowercase."""

    status_code: int
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: Any = None
    body_base64: str | None = None
    elapsed_ms: float = 0.0


class Transport(Protocol):
    def send(self, request: TransportRequest) -> TransportResponse: ...


def _sanitize_header_value(value: str) -> str:
    """Replace non-ASCII characters with '?' (RFC 7230 headers are ASCII)."""
    return value.encode("ascii", errors="replace").decode("ascii")


class HttpxTransport:
    """Sends requests with httpx.

    Usage:
        transport = HttpxTransport()
        response = transport.send(TransportRequest(method="GET", url="http://localhost/health"))

    Or with a preconfigured client (e.g. mTLS, proxies, httpx.MockTransport):
        transport = HttpxTransport(client=httpx.Client(verify="/path/to/ca.pem"))
    """

    def __init__(self, client: httpx.Client | None = None, **client_kwargs: Any) -> None:
        """Initialize the transport.

        Args:
            client: Client to send through. Not closed by this transport.
            **client_kwargs: Passed to httpx.Client when no client is given;
                a fresh client is created (and closed) per request.
        """
        self._client = client
        self._client_kwargs = client_kwargs

    def send(self, request: TransportRequest) -> TransportResponse:
        if self._client is not None:
            return self._send(self._client, request)
        with httpx.Client(**self._client_kwargs) as client:
            return self._send(client, request)

    def _send(self, client: httpx.Client, request: TransportRequest) -> TransportResponse:
        headers = {key: _sanitize_header_value(value) for key, value in request.headers.items()}

        content: bytes | None = None
        json_body: Any = None
        if isinstance(request.body, bytes):
            content = request.body
        elif isinstance(request.body, str):
            content = request.body.encode("utf-8")
        elif request.body is not None:
            json_body = request.body

        chunks: list[bytes] = []
        try:
            start_time = time.perf_counter()
            with client.stream(
                request.method,
                request.url,
                params=request.query or None,
                headers=headers or None,
                content=content,
                json=json_body,
                timeout=request.timeout_ms / 1000,
            ) as http_response:
                # Leaving the stream context early closes the connection
                for chunk in http_response.iter_bytes():
                    if request.cancelled.is_set():
                        raise RequestTimeoutError(
                            f"Request cancelled after {request.timeout_ms}ms deadline",
                            timeout_ms=request.timeout_ms,
                            cancelled=True,
                        )
                    chunks.append(chunk)
            elapsed_ms = (time.perf_counter() - start_time) * 1000
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"Request timed out after {request.timeout_ms}ms: {e}",
                timeout_ms=request.timeout_ms,
                cancelled=True,
            ) from e

        return self._convert_response(http_response, b"".join(chunks), elapsed_ms)

    def _convert_response(
        self,
        response: httpx.Response,
        raw: bytes,
        elapsed_ms: float,
    ) -> TransportResponse:
        """Convert an httpx response to a TransportResponse.

        Body parsing by content-type:
            JSON   -> parsed value
            text/* -> str
            other  -> base64
        """
        headers: dict[str, list[str]] = {}
        for key, value in response.headers.multi_items():
            headers.setdefault(key.lower(), []).append(value)

        body: Any = None
        body_base64: str | None = None
        content_type = response.headers.get("content-type", "").lower()

        if raw:
            if "json" in content_type:
                try:
                    body = json.loads(raw)
                except ValueError:
                    # Not valid JSON despite content-type
                    body_base64 = base64.b64encode(raw).decode("ascii")
            elif content_type.startswith("text/"):
                body = raw.decode(response.encoding or "utf-8", errors="replace")
            else:
                body_base64 = base64.b64encode(raw).decode("ascii")

        return TransportResponse(
            status_code=response.status_code,
            headers=headers,
            body=body,
            body_base64=body_base64,
            elapsed_ms=elapsed_ms,
        )
