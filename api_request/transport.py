"""Transport - Sends resolved requests and streams responses back.

One transport is registered per protocol ("http", "https"). The client picks
one by the resolved protocol, writes the payload, and reads the body through
TransportResponse.iter_chunks(). Transport failures are httpx exceptions and
are not wrapped here.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager, contextmanager
from typing import Iterator, Mapping, Protocol

import httpx

from api_request.errors import UnsupportedProtocolError
from api_request.models import ResolvedOptions

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOLS = ("http", "https")


def _format_http_version(version: str) -> str:
    """'HTTP/1.1' -> '1.1'."""
    return version.split("/", 1)[1] if "/" in version else version


class TransportResponse:
    """A response whose headers have arrived and whose body is still streaming.

    complete turns True once iter_chunks() is exhausted. aborted turns True
    when the stream fails part way through; the error is re-raised.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.status_code: int = response.status_code
        self.status_message: str = response.reason_phrase
        self.http_version: str = _format_http_version(response.http_version)
        # httpx lower-cases keys and joins repeated headers with ", "
        self.headers: dict[str, str] = dict(response.headers.items())
        encoding = response.headers.encoding
        self.raw_headers: list[str] = [
            part.decode(encoding) for pair in response.headers.raw for part in pair
        ]
        self.complete = False
        self.aborted = False

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield body chunks until the transport signals the end of the body."""
        try:
            for chunk in self._response.iter_bytes():
                if chunk:
                    yield chunk
        except httpx.HTTPError:
            self.aborted = True
            raise
        self.complete = True


class Transport(Protocol):
    """What the client needs from a transport."""

    def request(
        self, options: ResolvedOptions, payload: bytes
    ) -> AbstractContextManager[TransportResponse]: ...

    def close(self) -> None: ...


class HttpxTransport:
    """Transport for a single protocol backed by an httpx.Client.

    Usage:
        transport = HttpxTransport("https")
        try:
            with transport.request(options, b"") as response:
                body = b"".join(response.iter_chunks())
        finally:
            transport.close()
    """

    def __init__(
        self,
        protocol: str,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            protocol: Protocol this transport serves, without colon ("http").
            timeout: Timeout in seconds for the owned client. None disables it.
            client: Pre-built httpx.Client (e.g. with a MockTransport). A client
                    passed in is not closed by close().
        """
        self.protocol = protocol
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    @contextmanager
    def request(self, options: ResolvedOptions, payload: bytes) -> Iterator[TransportResponse]:
        """Send the request and yield the response once its headers arrive.

        The underlying response is closed when the context exits.

        Raises:
            httpx.TransportError: If the request cannot be sent.
        """
        http_request = self._client.build_request(
            options.method,
            options.url,
            headers=options.headers,
            content=payload,
        )
        logger.debug("Dispatching %s %s (%d byte payload)", options.method, options.url, len(payload))
        http_response = self._client.send(http_request, stream=True)
        try:
            yield TransportResponse(http_response)
        finally:
            http_response.close()

    def close(self) -> None:
        """Close the owned httpx client."""
        if self._owns_client:
            self._client.close()


def build_transports(timeout: float | None = None) -> dict[str, HttpxTransport]:
    """Create one HttpxTransport per supported protocol.

    If creating a later transport fails, the earlier ones are closed so no
    connection pool leaks.
    """
    transports: dict[str, HttpxTransport] = {}
    try:
        for protocol in SUPPORTED_PROTOCOLS:
            transports[protocol] = HttpxTransport(protocol, timeout=timeout)
    except Exception:
        for transport in transports.values():
            transport.close()
        raise
    return transports


def select_transport(protocol: str, transports: Mapping[str, Transport]) -> Transport:
    """Pick the transport for a resolved protocol such as 'https:'.

    Raises:
        UnsupportedProtocolError: If no transport serves the protocol.
    """
    name = protocol.rstrip(":")
    try:
        return transports[name]
    except KeyError:
        supported = ", ".join(sorted(transports)) or "(none)"
        raise UnsupportedProtocolError(
            f"Unsupported protocol '{name}'. Supported: {supported}"
        ) from None
