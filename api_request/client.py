"""Request Orchestrator - Runs a call from descriptor to NormalizedResponse.

Each call goes through one linear pipeline:

    resolve options -> select transport -> serialize payload -> dispatch
    -> buffer body -> validate headers (strict mode) -> normalize
    -> apply status policy

Raising on status >= 400 and the strict content-type check are independent
flags. Transport failures (httpx exceptions) propagate unwrapped.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from api_request.errors import ErrorKind, RequestError
from api_request.models import CallDescriptor, ClientConfig, NormalizedResponse
from api_request.options import resolve_options
from api_request.payload import encode_payload, serialize_payload
from api_request.response import normalize_response, validate_response_headers
from api_request.transport import Transport, build_transports, select_transport

logger = logging.getLogger(__name__)


def merge_headers(defaults: Mapping[str, str], overrides: Mapping[str, str]) -> dict[str, str]:
    """Merge overrides over defaults, matching header names case-insensitively."""
    overridden = {name.lower() for name in overrides}
    merged = {name: value for name, value in defaults.items() if name.lower() not in overridden}
    merged.update(overrides)
    return merged


def _describe_body(body: Any) -> str:
    """Render a response body for an error message."""
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return json.dumps(body, ensure_ascii=False, default=str)


class Client:
    """Makes HTTP(S) calls and returns one NormalizedResponse per call.

    A Client keeps no per-call state, so it can be shared between threads.

    Usage:
        with Client() as client:
            response = client.get("api.example.com/users/{id}", path_params={"id": 7})

    Safe mode (never raise for status):
        client = Client(ClientConfig(raise_on_status=False))
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transports: Mapping[str, Transport] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client settings. Defaults to ClientConfig().
            transports: Protocol name -> transport. Defaults to one httpx-backed
                        transport per supported protocol. Transports passed in
                        are not closed by close().
        """
        self._config = config or ClientConfig()
        self._owns_transports = transports is None
        if transports is None:
            self._transports: dict[str, Transport] = dict(build_transports(self._config.timeout))
        else:
            self._transports = dict(transports)

    def __enter__(self) -> Client:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close owned transports, all of them even if one close() raises."""
        if not self._owns_transports:
            return
        errors: list[Exception] = []
        for transport in self._transports.values():
            try:
                transport.close()
            except Exception as e:
                errors.append(e)
        if errors:
            raise errors[0]

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def default_headers(self) -> dict[str, str]:
        return dict(self._config.default_headers)

    # -------------------------------------------------------------------------
    # Verb helpers
    # -------------------------------------------------------------------------

    def get(self, endpoint: str, **options: Any) -> NormalizedResponse:
        """GET endpoint with an empty body."""
        return self.call(**{**options, "method": "GET", "endpoint": endpoint, "body": ""})

    def post(self, endpoint: str, body: Any = "", **options: Any) -> NormalizedResponse:
        """POST body to endpoint."""
        return self.call(**{**options, "method": "POST", "endpoint": endpoint, "body": body})

    def put(self, endpoint: str, body: Any = "", **options: Any) -> NormalizedResponse:
        """PUT body to endpoint."""
        return self.call(**{**options, "method": "PUT", "endpoint": endpoint, "body": body})

    def patch(self, endpoint: str, body: Any = "", **options: Any) -> NormalizedResponse:
        """PATCH body to endpoint."""
        return self.call(**{**options, "method": "PATCH", "endpoint": endpoint, "body": body})

    def delete(self, endpoint: str, **options: Any) -> NormalizedResponse:
        """DELETE endpoint with an empty body."""
        return self.call(**{**options, "method": "DELETE", "endpoint": endpoint, "body": ""})

    # -------------------------------------------------------------------------
    # Generic call
    # -------------------------------------------------------------------------

    def call(self, descriptor: CallDescriptor | None = None, /, **fields: Any) -> NormalizedResponse:
        """Run a call described by a CallDescriptor and/or its fields.

        Fields given as keywords override those of descriptor. Retrying a
        previous call is client.call(response.origin_request).

        Returns:
            The NormalizedResponse.

        Raises:
            pydantic.ValidationError: If the fields do not form a valid descriptor.
            ConfigError: If the endpoint is invalid or its protocol unsupported.
            RequestError: REQUEST_ERROR on a strict-mode content-type mismatch,
                or on status >= 400 when raising on status.
            httpx.TransportError: If the transport fails (not wrapped).
        """
        if descriptor is None:
            descriptor = CallDescriptor(**fields)
        elif fields:
            descriptor = CallDescriptor.model_validate({**descriptor.model_dump(), **fields})

        response = self._execute(descriptor)
        self._on_response(response)
        self._apply_status_policy(response, descriptor)
        return response

    def _execute(self, descriptor: CallDescriptor) -> NormalizedResponse:
        """Dispatch the call and normalize its response. No status policy."""
        headers = merge_headers(self._config.default_headers, descriptor.headers)
        options = resolve_options(descriptor, headers)
        transport = select_transport(options.protocol, self._transports)
        payload = encode_payload(serialize_payload(descriptor.body))

        with transport.request(options, payload) as transport_response:
            raw_body = b"".join(transport_response.iter_chunks())

        logger.debug(
            "%s %s -> %d (%d bytes)",
            options.method,
            options.url,
            transport_response.status_code,
            len(raw_body),
        )

        validate_response_headers(transport_response.headers, descriptor.strict_mode)
        return normalize_response(transport_response, raw_body, descriptor)

    def _raises_on_status(self, descriptor: CallDescriptor) -> bool:
        if descriptor.raise_on_status is None:
            return self._config.raise_on_status
        return descriptor.raise_on_status

    def _apply_status_policy(self, response: NormalizedResponse, descriptor: CallDescriptor) -> None:
        """Raise for status >= 400 unless the call is in safe mode."""
        if response.status_code < 400 or not self._raises_on_status(descriptor):
            return
        raise RequestError(
            f"Request failed with status code {response.status_code}: "
            f"{_describe_body(response.body)}",
            ErrorKind.REQUEST_ERROR,
            response=response,
        )

    def _on_response(self, response: NormalizedResponse) -> None:
        """Hook called with every normalized response, before the status policy."""


class Session(Client):
    """A Client that remembers the most recent call.

    last_request and last_response are overwritten by each call that gets a
    response, including one that then fails the status policy. Calls that fail
    before a response exists (transport errors, strict-mode rejections) leave
    them unchanged.

    The cache is unsynchronized: do not share a Session between threads, or
    serialize calls that rely on it. Use a plain Client for concurrent work.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transports: Mapping[str, Transport] | None = None,
    ) -> None:
        super().__init__(config, transports)
        self._last_response: NormalizedResponse | None = None

    def _on_response(self, response: NormalizedResponse) -> None:
        self._last_response = response

    @property
    def last_response(self) -> NormalizedResponse | None:
        return self._last_response

    @property
    def last_request(self) -> CallDescriptor | None:
        if self._last_response is None:
            return None
        return self._last_response.origin_request

    @property
    def status_code(self) -> int | None:
        """Status code of the last response."""
        return None if self._last_response is None else self._last_response.status_code

    @property
    def response_body(self) -> Any:
        """Decoded body of the last response."""
        return None if self._last_response is None else self._last_response.body

    def clear(self) -> None:
        """Forget the last call."""
        self._last_response = None
