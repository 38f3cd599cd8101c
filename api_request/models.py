"""Data models for api-request.

All models use Pydantic v2. CallDescriptor is what a caller asks for,
ResolvedOptions is what the transport receives, NormalizedResponse is what
the caller gets back.
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_CONTENT_TYPES: tuple[str, ...] = (
    "application/json",
    "text/plain",
    "application/pdf",
    "image/jpg",
)

DEFAULT_HEADERS: dict[str, str] = {
    "Content-Type": DEFAULT_CONTENT_TYPES[0],
    "Accept": ",".join(DEFAULT_CONTENT_TYPES),
}


# =============================================================================
# Request Models
# =============================================================================


class CallDescriptor(BaseModel):
    """The caller's request intent for a single call.

    The endpoint may carry a scheme, a path template and a query string. When
    no scheme is given, http is assumed. path, when non-empty, replaces the
    endpoint's own path; query_params, when non-empty, replace its query.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, ser_json_bytes="base64")

    endpoint: str = Field(description="Target host with optional scheme, path and query")
    method: str = Field(default="GET", description="HTTP method, upper-cased on validation")
    path: str = Field(default="", description="Path template with {name} placeholders")
    path_params: dict[str, Any] = Field(
        default_factory=dict, description="Placeholder name -> substitution value"
    )
    query_params: dict[str, Any] = Field(
        default_factory=dict, description="Query parameters; list values repeat the key"
    )
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers merged over the client defaults"
    )
    body: Any = Field(default="", description="bytes, JSON-serializable object, or string")
    strict_mode: bool = Field(
        default=False, description="Require an application/json response content-type"
    )
    raise_on_status: bool | None = Field(
        default=None, description="Raise on status >= 400; None uses the client default"
    )

    @field_validator("endpoint")
    @classmethod
    def check_endpoint(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("endpoint must not be empty")
        return v

    @field_validator("headers", mode="before")
    @classmethod
    def stringify_header_values(cls, v: Any) -> Any:
        if not isinstance(v, Mapping):
            return v
        return {
            name: ("true" if value else "false") if isinstance(value, bool) else str(value)
            for name, value in v.items()
        }

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("method must not be empty")
        return v


class ResolvedOptions(BaseModel):
    """Transport-ready request options derived from a CallDescriptor."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    protocol: str = Field(description="URL scheme with trailing colon, e.g. 'https:'")
    host: str = Field(description="Host name without port")
    port: int | None = Field(default=None, description="Explicit port, None for the scheme default")
    method: str = Field(description="HTTP method")
    path: str = Field(description="Absolute path with optional ?query")
    headers: dict[str, str] = Field(default_factory=dict, description="Merged request headers")

    @property
    def url(self) -> str:
        """Absolute URL for the transport."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        netloc = host if self.port is None else f"{host}:{self.port}"
        return f"{self.protocol}//{netloc}{self.path}"


# =============================================================================
# Response Models
# =============================================================================


class NormalizedResponse(BaseModel):
    """A buffered response, decoupled from the transport that produced it.

    body is the JSON-decoded value when raw_body parses as JSON, otherwise
    raw_body itself. Bytes are serialized as base64 in JSON mode.
    """

    model_config = ConfigDict(extra="forbid", ser_json_bytes="base64")

    status_code: int = Field(description="HTTP status code")
    status_message: str = Field(default="", description="Reason phrase")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers as the transport provides them"
    )
    raw_headers: list[str] = Field(
        default_factory=list, description="Alternating header names and values, as received"
    )
    http_version: str = Field(default="1.1", description="Protocol version, e.g. '1.1'")
    complete: bool = Field(default=False, description="Body was received in full")
    aborted: bool = Field(default=False, description="Body stream failed before completion")
    body: Any = Field(default=None, description="Decoded JSON value, or raw bytes")
    raw_body: bytes = Field(default=b"", description="Body bytes as received")
    origin_request: CallDescriptor = Field(description="The call that produced this response")

    def header(self, name: str, default: str | None = None) -> str | None:
        """Look up a header value ignoring case."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default


# =============================================================================
# Configuration Models
# =============================================================================


class ClientConfig(BaseModel):
    """Client-wide settings, loadable from YAML (see config_loader)."""

    model_config = ConfigDict(extra="forbid")

    default_headers: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_HEADERS),
        description="Headers sent on every call unless overridden",
    )
    raise_on_status: bool = Field(
        default=True, description="Raise RequestError on status >= 400"
    )
    timeout: float | None = Field(
        default=None, gt=0, description="Transport timeout in seconds; None waits indefinitely"
    )
