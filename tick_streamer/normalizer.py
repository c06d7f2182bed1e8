"""
Tick Normalizer

Transforms a decoded broker payload into a fully populated Tick.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional

from tick_streamer.core.types import MalformedEventError
from tick_streamer.models.tick import STOCK_ID_KEY, WIRE_FIELDS, Tick

logger = logging.getLogger(__name__)


def _coerce_value(key: str, value: Any) -> Optional[str]:
    """
    Convert a payload value to its string form.

    Numbers are stringified as-is. None and non-scalar values (lists,
    objects, booleans) are treated as absent so the field gets its default.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        logger.debug("Ignoring boolean value for %s", key)
        return None
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    logger.debug("Ignoring %s value for %s", type(value).__name__, key)
    return None


def validate_tick_message(raw: Any) -> str:
    """
    Validate the required parts of a raw tick record.

    Args:
        raw: Decoded payload from the broker

    Returns:
        The stockId

    Raises:
        MalformedEventError: If raw is not a mapping or stockId is missing/empty
    """
    if not isinstance(raw, Mapping):
        raise MalformedEventError(
            f"Expected mapping, got {type(raw).__name__}",
            field="message",
            value=raw,
        )

    stock_id = _coerce_value(STOCK_ID_KEY, raw.get(STOCK_ID_KEY))
    if not stock_id or not stock_id.strip():
        raise MalformedEventError(
            f"Missing or empty required field: {STOCK_ID_KEY}",
            field=STOCK_ID_KEY,
            value=raw.get(STOCK_ID_KEY),
        )
    return stock_id


def normalize_tick(raw: Mapping[str, Any]) -> Tick:
    """
    Transform a single raw tick record into a Tick.

    Every field other than stockId falls back to its documented default
    when absent. Keys outside the tick's fields are dropped. Normalizing
    a Tick's own to_dict() output yields an equal Tick.

    Args:
        raw: Decoded key/value record for one event

    Returns:
        Normalized Tick

    Raises:
        MalformedEventError: If stockId is absent or empty
    """
    stock_id = validate_tick_message(raw)

    values: dict[str, str] = {}
    for attr, key, default in WIRE_FIELDS:
        value = _coerce_value(key, raw.get(key))
        values[attr] = default if value is None else value

    return Tick(stock_id=stock_id, **values)
