"""Execution Engine - sends a frozen RequestSpec and builds the ResponseResult.

The transport call runs on a worker thread so the engine can stop waiting at
the deadline. When the deadline passes the request's cancel event is set, the
pending call is abandoned and RequestTimeoutError is raised.

Non-2xx statuses are not errors here; they come back as ordinary results for
the caller to assert against.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from fluent_rest.diagnostics import Diagnostics
from fluent_rest.errors import RequestTimeoutError, TransportError
from fluent_rest.models import Configuration, RequestSpec, ResponseResult
from fluent_rest.transport import HttpxTransport, Transport, TransportRequest, TransportResponse


class ExecutionEngine:
    """Executes one request at a time through a transport.

    Usage:
        engine = ExecutionEngine(config, HttpxTransport(), Diagnostics(config))
        result = engine.execute(spec)
    """

    def __init__(
        self,
        config: Configuration,
        transport: Transport | None = None,
        diagnostics: Diagnostics | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Configuration snapshot captured by the builder.
            transport: HTTP collaborator. Defaults to HttpxTransport.
            diagnostics: Diagnostics bound to the same snapshot.
        """
        self._config = config
        self._transport = transport or HttpxTransport()
        self._diagnostics = diagnostics or Diagnostics(config)

    @property
    def diagnostics(self) -> Diagnostics:
        return self._diagnostics

    def execute(self, spec: RequestSpec) -> ResponseResult:
        """Send spec and wrap the response.

        Raises:
            RequestTimeoutError: The exchange did not finish within spec.timeout_ms.
            TransportError: The transport failed (connection, DNS, TLS, ...).
        """
        request = TransportRequest(
            method=spec.method.value,
            url=spec.url,
            headers=spec.effective_headers(),
            query=dict(spec.query),
            body=spec.body,
            timeout_ms=spec.timeout_ms,
        )
        self._diagnostics.log_request(spec)

        start_time = time.perf_counter()
        try:
            raw = self._send_with_deadline(request)
        except RequestTimeoutError as e:
            if e.elapsed_ms is None:
                e.elapsed_ms = (time.perf_counter() - start_time) * 1000
            self._diagnostics.snapshot("timeout", e, spec, elapsed_ms=e.elapsed_ms)
            raise
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error = TransportError(
                f"{spec.method.value} {spec.url} failed: {type(e).__name__}: {e}", cause=e
            )
            self._diagnostics.snapshot("transport", error, spec, elapsed_ms=elapsed_ms)
            raise error from e

        if raw.elapsed_ms >= spec.timeout_ms:
            error = RequestTimeoutError(
                f"{spec.method.value} {spec.url} took {raw.elapsed_ms:.0f}ms "
                f"(timeout {spec.timeout_ms}ms)",
                timeout_ms=spec.timeout_ms,
                elapsed_ms=raw.elapsed_ms,
                cancelled=False,
            )
            self._diagnostics.snapshot("timeout", error, spec, elapsed_ms=raw.elapsed_ms)
            raise error

        result = ResponseResult(
            status_code=raw.status_code,
            headers=raw.headers,
            body=raw.body,
            body_base64=raw.body_base64,
            elapsed_ms=raw.elapsed_ms,
            correlation_id=spec.correlation_id,
            request=spec,
        )
        self._diagnostics.log_response(result)
        return result

    def _send_with_deadline(self, request: TransportRequest) -> TransportResponse:
        """Run transport.send on a worker thread, giving up at the deadline."""
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fluent-rest")
        try:
            future = pool.submit(self._transport.send, request)
            start_time = time.perf_counter()
            try:
                return future.result(timeout=request.timeout_ms / 1000)
            except FutureTimeoutError:
                elapsed_ms = (time.perf_counter() - start_time) * 1000
                request.cancelled.set()
                future.cancel()
                raise RequestTimeoutError(
                    f"{request.method} {request.url} exceeded timeout of {request.timeout_ms}ms; "
                    f"transport call cancelled",
                    timeout_ms=request.timeout_ms,
                    elapsed_ms=elapsed_ms,
                    cancelled=True,
                ) from None
        finally:
            # Do not block on an abandoned call; it sees the cancel event
            pool.shutdown(wait=False)
