"""Payload Serializer - Converts a request body into something writable."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, TypeAdapter

_JSON_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


def serialize_payload(body: Any = "") -> bytes | str:
    """Serialize a request body for transmission.

    bytes-like bodies pass through unchanged. Mappings, sequences and pydantic
    models become compact JSON; dates, decimals and UUIDs nested in them are
    encoded the way pydantic encodes them. Anything else is converted with
    str(), with None sent as an empty body and booleans as JSON literals.
    """
    if isinstance(body, bytes):
        return body
    if isinstance(body, (bytearray, memoryview)):
        return bytes(body)

    if isinstance(body, BaseModel):
        return body.model_dump_json()
    if isinstance(body, (dict, list, tuple)):
        return _JSON_ADAPTER.dump_json(body).decode("utf-8")

    if body is None:
        return ""
    if isinstance(body, bool):
        return "true" if body else "false"
    return str(body)


def encode_payload(payload: bytes | str) -> bytes:
    """Encode a serialized payload for the wire (UTF-8 for text)."""
    if isinstance(payload, bytes):
        return payload
    return payload.encode("utf-8")
