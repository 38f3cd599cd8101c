"""Pytest configuration and fixtures for api-request tests.

This file provides:
- RecordingHandler: httpx.MockTransport handler that records requests
- make_client: Client/Session factory wired to mock transports
- PortReservation: Race-free port allocation for test servers
- MockServer: Subprocess management for the mock API server
"""

from __future__ import annotations

import json
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest

from api_request.client import Client
from api_request.models import CallDescriptor, ClientConfig, NormalizedResponse
from api_request.transport import SUPPORTED_PROTOCOLS, HttpxTransport

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"


class RecordingHandler:
    """Handler for httpx.MockTransport that records requests and replays one response.

    body is JSON-encoded unless content is given, in which case content is sent
    verbatim.
    """

    def __init__(
        self,
        status_code: int = 200,
        body: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        if content is None:
            content = json.dumps({"message": "ok"} if body is None else body).encode("utf-8")
        self.content = content
        self.headers = {"Content-Type": "application/json"} if headers is None else headers
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.content, headers=self.headers)

    @property
    def last_request(self) -> httpx.Request:
        assert self.requests, "no request was sent"
        return self.requests[-1]


def make_mock_transports(
    handler: Callable[[httpx.Request], httpx.Response],
) -> dict[str, HttpxTransport]:
    """One HttpxTransport per protocol, all routed to handler."""
    return {
        protocol: HttpxTransport(
            protocol, client=httpx.Client(transport=httpx.MockTransport(handler))
        )
        for protocol in SUPPORTED_PROTOCOLS
    }


def make_normalized_response(
    status_code: int = 200,
    body: Any = None,
    raw_body: bytes = b"",
    headers: dict[str, str] | None = None,
    endpoint: str = "test.com",
) -> NormalizedResponse:
    """Create a NormalizedResponse with sensible defaults."""
    return NormalizedResponse(
        status_code=status_code,
        status_message="OK",
        headers=headers or {"content-type": "application/json"},
        body=body,
        raw_body=raw_body,
        complete=True,
        origin_request=CallDescriptor(endpoint=endpoint),
    )


@pytest.fixture
def make_client() -> Generator[Callable[..., Client], None, None]:
    """Factory for clients backed by mock transports.

    Example:
        def test_get(make_client):
            handler = RecordingHandler(body={"id": 1})
            client = make_client(handler)
            client.get("test.com")
    """
    transports_made: list[dict[str, HttpxTransport]] = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        config: ClientConfig | None = None,
        cls: type[Client] = Client,
    ) -> Client:
        transports = make_mock_transports(handler)
        transports_made.append(transports)
        return cls(config, transports=transports)

    yield factory

    for transports in transports_made:
        for transport in transports.values():
            transport._client.close()


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    The port is held exclusively until release(), which MockServer calls just
    before the server binds.
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
        """Release the socket and return the port. Safe to call multiple times."""
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


class MockServer:
    """Runs tests/integration/mock_server.py as a subprocess."""

    def __init__(self, port: int | PortReservation) -> None:
        if isinstance(port, PortReservation):
            self._reservation: PortReservation | None = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        if self._reservation:
            self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
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
                f"MockServer failed to start on port {self.port}. stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the subprocess: SIGTERM, then SIGKILL after 5s. Safe to call twice."""
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Unkillable process, nothing more to do
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """Session-scoped mock API server (see tests/integration/mock_server.py)."""
    with MockServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Mark tests by location so subsets can run via -m unit / -m integration."""
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
