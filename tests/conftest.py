"""Pytest configuration and fixtures for request-factory tests.

This file provides:
- make_request: Request builder with test-friendly defaults
- RecordingTransport: httpx.MockTransport that captures what reaches the wire
- PortReservation: Race-free port allocation for test servers
- EchoServer: Subprocess management for the integration echo server
- Fixtures: Shared test infrastructure (config, transport, factory, server)
"""

from __future__ import annotations

import io
import socket
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generator

import httpx
import pytest

from request_factory.factory import RequestFactory
from request_factory.models import ClientConfig, HttpMethodName, Request

# Project root for subprocess working directory
PROJECT_ROOT = Path(__file__).parent.parent
ECHO_SERVER_MODULE = "tests.integration.echo_server"


def make_request(
    method: HttpMethodName = HttpMethodName.GET,
    endpoint: str = "http://storage.example.com",
    resource_path: str | None = "/bucket/key",
    headers: dict[str, str] | None = None,
    parameters: dict[str, str | None] | None = None,
    content: bytes | None = None,
) -> Request:
    """Create a Request for testing.

    Prefer this over constructing Request directly - content is given as
    bytes and wrapped in a BytesIO stream here.
    """
    return Request(
        http_method=method,
        endpoint=endpoint,
        resource_path=resource_path,
        headers=headers or {},
        parameters=parameters or {},
        content=io.BytesIO(content) if content is not None else None,
    )


@dataclass
class CapturedRequest:
    """What the transport received for one request."""

    method: str
    url: httpx.URL
    headers: httpx.Headers
    body: bytes


class RecordingTransport(httpx.MockTransport):
    """Mock transport that records every request and returns a fixed response.

    Thread-safe, so one instance can be shared by concurrent tests.
    """

    def __init__(self, status_code: int = 200, body: bytes = b"ok") -> None:
        self.captured: list[CapturedRequest] = []
        self._status_code = status_code
        self._body = body
        self._lock = threading.Lock()
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        body = request.read()
        captured = CapturedRequest(
            method=request.method,
            url=request.url,
            headers=request.headers,
            body=body,
        )
        with self._lock:
            self.captured.append(captured)
        return httpx.Response(self._status_code, content=self._body)

    @property
    def last(self) -> CapturedRequest:
        assert self.captured, "no request reached the transport"
        return self.captured[-1]


@pytest.fixture
def config() -> ClientConfig:
    """Client configuration with a short, predictable user agent."""
    return ClientConfig(user_agent="sdk/1.0")


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def factory(transport: RecordingTransport) -> RequestFactory:
    """RequestFactory wired to the recording transport."""
    return RequestFactory(transport=transport)


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    WHY this exists: finding a free port and binding it later leaves a race
    window where another process can grab the port. This class keeps the
    socket open until just before the server starts.
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
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class EchoServer:
    """Manages the echo server subprocess for integration tests.

    Runs tests/integration/echo_server.py, which answers every request with
    a JSON description of what it received.
    """

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self.port = reservation.port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the echo server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", ECHO_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
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
                f"EchoServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the server with SIGTERM, escalating to SIGKILL after 5s.

        Safe to call multiple times or if server was never started.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Unkillable, nothing more we can do
            self._process = None

    def __enter__(self) -> EchoServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


@pytest.fixture(scope="session")
def echo_server() -> Generator[EchoServer, None, None]:
    """Session-scoped echo server; starts once per test session."""
    with EchoServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Tag tests as integration or unit based on their directory.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.path)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
