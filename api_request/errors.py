"""Error taxonomy for api-request.

Classified failures raise RequestError with an ErrorKind. Transport failures
(connection refused, reset mid-stream) are httpx exceptions and propagate
unwrapped so callers can handle them with httpx's own hierarchy.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from api_request.models import NormalizedResponse


class ErrorKind(IntEnum):
    """Classification of a RequestError."""

    REQUEST_ERROR = 1  # Status >= 400 (raising mode) or content-type mismatch
    PARSE_ERROR = 2  # Reserved for body decoding; the normalizer never raises it


class ApiRequestError(Exception):
    """Base class for api-request errors."""


class RequestError(ApiRequestError):
    """A classified request failure.

    Built either from a message string or from the exception that caused it.
    Only in the latter case is the cause kept on previous_error.

    Attributes:
        kind: ErrorKind of the failure.
        previous_error: Underlying exception, if built from one.
        response: The normalized response, when the failure came from its status.
    """

    def __init__(
        self,
        error: str | BaseException,
        kind: ErrorKind = ErrorKind.REQUEST_ERROR,
        response: NormalizedResponse | None = None,
    ) -> None:
        super().__init__(error if isinstance(error, str) else str(error) or repr(error))
        self.kind = ErrorKind(kind)
        self.previous_error: BaseException | None = None if isinstance(error, str) else error
        self.response = response

    @property
    def code(self) -> int:
        """Numeric value of kind."""
        return int(self.kind)

    @property
    def message(self) -> str:
        return str(self)


class ConfigError(ApiRequestError):
    """Raised when configuration or an endpoint cannot be used."""


class UnsupportedProtocolError(ConfigError):
    """Raised when no transport is registered for a resolved protocol."""
