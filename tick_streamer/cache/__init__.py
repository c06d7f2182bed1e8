"""
tick_streamer.cache: bounded, expiring per-symbol tick windows.

Public API:
    RecencyCache       - put / peek_latest / snapshot over a TickStore
    RedisTickStore     - production backend (Redis lists)
    InMemoryTickStore  - development/test backend with an injectable clock
"""
from .recency import RecencyCache
from .store import InMemoryTickStore, RedisTickStore, TickStore

__all__ = [
    "InMemoryTickStore",
    "RecencyCache",
    "RedisTickStore",
    "TickStore",
]
