"""
Tick Streamer Data Models
"""
from tick_streamer.models.tick import (
    STOCK_ID_KEY,
    WIRE_FIELDS,
    FluctuationSign,
    Tick,
    cache_key,
    sign_label,
)

__all__ = [
    "STOCK_ID_KEY",
    "WIRE_FIELDS",
    "FluctuationSign",
    "Tick",
    "cache_key",
    "sign_label",
]
