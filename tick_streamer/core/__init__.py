"""
Tick Streamer Core Types
"""
from tick_streamer.core.types import (
    CacheUnavailableError,
    MalformedEventError,
    ReconnectionState,
    TickStreamerError,
)

__all__ = [
    "CacheUnavailableError",
    "MalformedEventError",
    "ReconnectionState",
    "TickStreamerError",
]
