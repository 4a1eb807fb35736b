"""Pytest configuration and fixtures for fluent-rest tests.

This file provides:
- Factories for RequestSpec / ResponseResult / ResponseWrapper
- FakeTransport and RecordingSink collaborators for unit tests
- PortReservation / MockServer: subprocess management for the mock API server
- Hooks: unit/integration markers by test location
"""

from __future__ import annotations

import socket
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest

from fluent_rest.config import reset_defaults
from fluent_rest.diagnostics import Diagnostics
from fluent_rest.errors import RequestTimeoutError
from fluent_rest.models import Configuration, HttpMethod, LogLevel, RequestSpec, ResponseResult
from fluent_rest.response import ResponseWrapper
from fluent_rest.transport import HttpxTransport, TransportRequest, TransportResponse

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
MOCK_SERVER_MODULE = "tests.integration.mock_server"

BASE_URL = "http://api.test"


# =============================================================================
# Factories
# =============================================================================


def make_request_spec(
    method: HttpMethod = HttpMethod.GET,
    path: str = "/widgets/1",
    headers: dict[str, str] | None = None,
    authorization: str | None = None,
    body: Any = None,
    timeout_ms: int = 5000,
    correlation_id: str = "corr-123",
) -> RequestSpec:
    return RequestSpec(
        method=method,
        path=path,
        base_url=BASE_URL,
        headers=headers if headers is not None else {"X-Correlation-ID": correlation_id},
        authorization=authorization,
        body=body,
        timeout_ms=timeout_ms,
        correlation_id=correlation_id,
    )


def make_response_result(
    status_code: int = 200,
    headers: dict[str, list[str]] | None = None,
    body: Any = None,
    elapsed_ms: float = 10.0,
    request: RequestSpec | None = None,
) -> ResponseResult:
    """Create a ResponseResult for testing assertions.

    Prefer this over constructing ResponseResult directly - it provides
    sensible defaults and documents which fields are typically varied in tests.
    """
    request = request or make_request_spec()
    return ResponseResult(
        status_code=status_code,
        headers=headers or {"content-type": ["application/json"]},
        body=body,
        elapsed_ms=elapsed_ms,
        correlation_id=request.correlation_id,
        request=request,
    )


class RecordingSink:
    """LogSink that keeps every record it is given."""

    def __init__(self) -> None:
        self.records: list[tuple[str, dict[str, Any]]] = []

    def write(self, level: str, record: dict[str, Any]) -> None:
        self.records.append((level, record))

    def events(self) -> list[str]:
        return [record["event"] for _, record in self.records]


def make_wrapper(
    status_code: int = 200,
    body: Any = None,
    headers: dict[str, list[str]] | None = None,
    request: RequestSpec | None = None,
    sink: RecordingSink | None = None,
    log_level: LogLevel = LogLevel.DEBUG,
) -> ResponseWrapper:
    """ResponseWrapper over a canned result, with diagnostics going to sink."""
    config = Configuration(base_url=BASE_URL, log_level=log_level)
    diagnostics = Diagnostics(config, sink or RecordingSink())
    result = make_response_result(status_code=status_code, body=body, headers=headers, request=request)
    return ResponseWrapper(result, diagnostics)


class FakeTransport:
    """Transport double: returns a canned response, raises, or stalls.

    A stalled call waits on the request's cancel event and records whether the
    engine cancelled it.
    """

    def __init__(
        self,
        response: TransportResponse | None = None,
        error: BaseException | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.response = response or TransportResponse(
            status_code=200,
            headers={"content-type": ["application/json"]},
            body={"id": 1},
            elapsed_ms=1.0,
        )
        self.error = error
        self.delay_s = delay_s
        self.requests: list[TransportRequest] = []
        self.cancel_observed = threading.Event()

    def send(self, request: TransportRequest) -> TransportResponse:
        self.requests.append(request)
        if self.delay_s and request.cancelled.wait(self.delay_s):
            self.cancel_observed.set()
            raise RequestTimeoutError("cancelled by engine", timeout_ms=request.timeout_ms, cancelled=True)
        if self.error is not None:
            raise self.error
        return self.response


def mock_transport(handler: Callable[[httpx.Request], httpx.Response]) -> HttpxTransport:
    """HttpxTransport whose client answers through handler."""
    return HttpxTransport(client=httpx.Client(transport=httpx.MockTransport(handler)))


# =============================================================================
# Mock server
# =============================================================================


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    The socket stays bound until release(), just before the server starts.
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port. Safe to call twice."""
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except OSError:
            time.sleep(0.1)
    return False


class MockServer:
    """Runs tests/integration/mock_server.py as a subprocess."""

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self.port = reservation.port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        self._reservation.release()
        self._process = subprocess.Popen(
            [sys.executable, "-m", MOCK_SERVER_MODULE, "--host", self.host, "--port", str(self.port)],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer failed to start on port {self.port}. stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the subprocess: SIGTERM, then SIGKILL after 5s."""
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait(timeout=5)
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_defaults() -> Generator[None, None, None]:
    """Every test starts and ends with factory configuration."""
    reset_defaults()
    yield
    reset_defaults()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """Session-scoped mock API server."""
    with MockServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Tag tests with unit/integration markers based on their directory."""
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
