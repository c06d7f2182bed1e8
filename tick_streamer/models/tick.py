"""
Tick Data Model

One normalized market event for one symbol. Every field is a string, exactly
as it travels on the wire; the camelCase wire keys are kept in WIRE_FIELDS.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from tick_streamer.core.types import MalformedEventError

STOCK_ID_KEY = "stockId"

# (attribute, wire key, default) for every defaultable field, in wire order
WIRE_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("current_price", "currentPrice", "0"),
    ("fluctuation_price", "fluctuationPrice", "0"),
    ("fluctuation_rate", "fluctuationRate", "0.00"),
    ("fluctuation_sign", "fluctuationSign", "0"),
    ("transaction_volume", "transactionVolume", "0"),
    ("trading_time", "tradingTime", "000000"),
)


class FluctuationSign(str, Enum):
    """Direction of the price change versus the previous close."""

    UNKNOWN = "0"
    LIMIT_UP = "1"
    UP = "2"
    FLAT = "3"
    LIMIT_DOWN = "4"
    DOWN = "5"

    @classmethod
    def from_code(cls, code: str) -> "FluctuationSign":
        """Convert a wire code to FluctuationSign, defaulting to UNKNOWN."""
        for member in cls:
            if member.value == code:
                return member
        return cls.UNKNOWN

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")


def sign_label(code: str) -> str:
    """Presentation label for a fluctuationSign code ("up", "limit-down", "unknown", ...)."""
    return FluctuationSign.from_code(code).label


@dataclass(frozen=True)
class Tick:
    """A fully populated market tick."""

    stock_id: str
    current_price: str = "0"
    fluctuation_price: str = "0"
    fluctuation_rate: str = "0.00"
    fluctuation_sign: str = "0"
    transaction_volume: str = "0"
    trading_time: str = "000000"

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not isinstance(self.stock_id, str) or not self.stock_id.strip():
            raise MalformedEventError(
                "stockId must be a non-empty string",
                field=STOCK_ID_KEY,
                value=self.stock_id,
            )

    @property
    def sign(self) -> FluctuationSign:
        return FluctuationSign.from_code(self.fluctuation_sign)

    def to_dict(self) -> dict[str, str]:
        """Wire representation, camelCase keys, stockId first."""
        data = {STOCK_ID_KEY: self.stock_id}
        for attr, key, _ in WIRE_FIELDS:
            data[key] = getattr(self, attr)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Tick":
        """
        Strictly rebuild a Tick from its wire dict.

        Unlike normalize_tick(), nothing is defaulted: every key must be
        present as a string. Used for entries read back from the cache.

        Raises:
            MalformedEventError: If a key is missing or not a string
        """
        if not isinstance(data, Mapping):
            raise MalformedEventError(
                f"Expected mapping, got {type(data).__name__}",
                field="tick",
                value=data,
            )
        values: dict[str, str] = {}
        keys = (("stock_id", STOCK_ID_KEY),) + tuple((attr, key) for attr, key, _ in WIRE_FIELDS)
        for attr, key in keys:
            value = data.get(key)
            if not isinstance(value, str):
                raise MalformedEventError(
                    f"Missing or non-string field: {key}",
                    field=key,
                    value=value,
                )
            values[attr] = value
        return cls(**values)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Tick":
        """
        Decode a cached JSON entry.

        Raises:
            MalformedEventError: If the entry is not valid JSON or not a full tick
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedEventError(
                f"Invalid tick JSON: {e}",
                field="tick",
                value=raw,
            ) from e
        return cls.from_dict(data)


def cache_key(stock_id: str) -> str:
    """Redis key holding the recency list for a symbol."""
    return f"stock:{stock_id}"
