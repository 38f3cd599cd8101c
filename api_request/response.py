"""Response validation and normalization.

validate_response_headers enforces the strict-mode content-type contract.
normalize_response turns a buffered transport response into a
NormalizedResponse. Bodies that are not JSON are kept raw rather than
treated as errors.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from api_request.errors import ErrorKind, RequestError
from api_request.models import CallDescriptor, NormalizedResponse
from api_request.transport import TransportResponse

JSON_CONTENT_TYPE = "application/json"


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup. Transports do not all normalize case."""
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def validate_response_headers(headers: Mapping[str, str], strict_mode: bool) -> None:
    """Check that a strict-mode response declares exactly application/json.

    Args:
        headers: Response headers.
        strict_mode: When False this is a no-op.

    Raises:
        RequestError: REQUEST_ERROR if content-type is missing or different.
    """
    if not strict_mode:
        return

    content_type = get_header(headers, "content-type")
    if content_type is None:
        raise RequestError(
            "Strict mode: response has no content-type header", ErrorKind.REQUEST_ERROR
        )
    if content_type.strip().lower() != JSON_CONTENT_TYPE:
        raise RequestError(
            f"Strict mode: expected content-type '{JSON_CONTENT_TYPE}', got '{content_type}'",
            ErrorKind.REQUEST_ERROR,
        )


def parse_raw_body(raw_body: bytes) -> Any:
    """Decode raw_body as JSON, or return it unchanged if it is not JSON."""
    try:
        return json.loads(raw_body)
    except (ValueError, RecursionError):
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors
        return raw_body


def normalize_response(
    transport_response: TransportResponse,
    raw_body: bytes,
    origin_request: CallDescriptor,
) -> NormalizedResponse:
    """Build the NormalizedResponse for a completed call.

    Transport metadata is copied as-is. origin_request is the descriptor that
    produced the response, so the call can be repeated without the transport.
    """
    return NormalizedResponse(
        status_code=transport_response.status_code,
        status_message=transport_response.status_message,
        headers=dict(transport_response.headers),
        raw_headers=list(transport_response.raw_headers),
        http_version=transport_response.http_version,
        complete=transport_response.complete,
        aborted=transport_response.aborted,
        body=parse_raw_body(raw_body),
        raw_body=raw_body,
        origin_request=origin_request,
    )
