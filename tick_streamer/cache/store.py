"""
Tick Stores

Backends for the recency cache. A store keeps, per string key, an ordered
list of strings (newest first) that expires after a TTL refreshed on every
write. Both backends satisfy the TickStore protocol:

    RedisTickStore     - LPUSH/LTRIM/EXPIRE in one MULTI/EXEC transaction
    InMemoryTickStore  - dict-backed stub with an injectable clock, for
                         offline runs (--offline) and tests
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from tick_streamer.core.types import CacheUnavailableError

logger = logging.getLogger(__name__)


@runtime_checkable
class TickStore(Protocol):
    """Bounded, expiring list storage keyed by string."""

    async def push_bounded(self, key: str, value: str, capacity: int, ttl_seconds: int) -> None:
        """
        Prepend value to the list at key, keep the first *capacity*
        elements, and reset the key's TTL. Atomic per key.
        """
        ...

    async def head(self, key: str) -> Optional[str]:
        """Return element 0 of the list, or None if the key is absent."""
        ...

    async def read_all(self, key: str) -> list[str]:
        """Return the whole list (newest first), or [] if the key is absent."""
        ...

    async def close(self) -> None:
        """Release any underlying connection."""
        ...


class RedisTickStore:
    """
    Redis list backend.

    Usage:
        store = RedisTickStore(redis_url="redis://localhost:6379/0")
        await store.connect()
        await store.push_bounded("stock:005930", payload, capacity=5, ttl_seconds=3600)
        await store.close()
    """

    def __init__(self, redis_url: str, socket_timeout: float | None = None) -> None:
        self._redis_url = redis_url
        self._socket_timeout = socket_timeout
        self._redis: Redis | None = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the Redis connection."""
        self._redis = Redis.from_url(
            self._redis_url,
            decode_responses=True,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_timeout,
        )
        try:
            await self._redis.ping()
        except RedisError as exc:
            raise CacheUnavailableError(
                f"Cannot connect to Redis: {exc}", operation="connect"
            ) from exc
        logger.info("RedisTickStore connected to Redis at %s", self._redis_url)

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("RedisTickStore disconnected from Redis")

    async def __aenter__(self) -> RedisTickStore:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    def _client(self, operation: str) -> Redis:
        if self._redis is None:
            raise CacheUnavailableError(
                "RedisTickStore is not connected, call connect() first",
                operation=operation,
            )
        return self._redis

    # ── Store operations ──────────────────────────────────────────────────────

    async def push_bounded(self, key: str, value: str, capacity: int, ttl_seconds: int) -> None:
        redis = self._client("put")
        pipe = redis.pipeline(transaction=True)
        pipe.lpush(key, value)
        pipe.ltrim(key, 0, capacity - 1)
        pipe.expire(key, ttl_seconds)
        try:
            await pipe.execute()
        except RedisError as exc:
            raise CacheUnavailableError(
                f"Redis write failed: {exc}", operation="put", key=key
            ) from exc

    async def head(self, key: str) -> Optional[str]:
        redis = self._client("peek_latest")
        try:
            return await redis.lindex(key, 0)
        except RedisError as exc:
            raise CacheUnavailableError(
                f"Redis read failed: {exc}", operation="peek_latest", key=key
            ) from exc

    async def read_all(self, key: str) -> list[str]:
        redis = self._client("snapshot")
        try:
            return list(await redis.lrange(key, 0, -1))
        except RedisError as exc:
            raise CacheUnavailableError(
                f"Redis read failed: {exc}", operation="snapshot", key=key
            ) from exc


@dataclass
class _MemoryEntry:
    values: list[str]
    expires_at: float


class InMemoryTickStore:
    """
    Dict-backed store with TTL evaluated against *clock*.

    Every operation completes without awaiting, so each push is atomic on
    the event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, _MemoryEntry] = {}

    def _live(self, key: str) -> Optional[_MemoryEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    async def push_bounded(self, key: str, value: str, capacity: int, ttl_seconds: int) -> None:
        entry = self._live(key)
        values = [value] + (entry.values if entry else [])
        self._entries[key] = _MemoryEntry(
            values=values[:capacity],
            expires_at=self._clock() + ttl_seconds,
        )

    async def head(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry.values[0] if entry and entry.values else None

    async def read_all(self, key: str) -> list[str]:
        entry = self._live(key)
        return list(entry.values) if entry else []

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
