"""
Feed Serializer

Converts between Python dicts and the JSON strings carried in Redis stream
entries. stream_feed is decoupled from tick_streamer models and operates
on plain dicts.

Wire format: every stream entry has a single field, ``payload``, whose
value is a JSON object:
  {"stockId": "005930", "currentPrice": "70000", ...}
"""
from __future__ import annotations

import json
from typing import Any

PAYLOAD_FIELD = "payload"


class SerializationError(Exception):
    """Raised when serialization or deserialization fails."""


def serialize(data: dict[str, Any]) -> str:
    """
    Encode a data dict into a JSON string for a stream entry.

    Raises SerializationError if encoding fails.
    """
    try:
        return json.dumps(data, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to serialize feed message: {exc}") from exc


def deserialize(raw: str | bytes) -> dict[str, Any]:
    """
    Decode a JSON object from a stream entry.

    Raises SerializationError if decoding fails or the payload is not an object.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SerializationError(f"Feed message is not valid UTF-8: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SerializationError(f"Failed to deserialize feed message: {exc}") from exc

    if not isinstance(data, dict):
        raise SerializationError(
            f"Malformed feed payload: expected a JSON object, got {type(data).__name__}"
        )

    return data
