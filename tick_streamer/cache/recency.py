"""
Recency Cache

Per-symbol window of the most recent accepted ticks, newest first, bounded
to *capacity* and expiring *ttl_seconds* after the last write. Each symbol
lives under its own key ("stock:{stockId}") and is an independent unit of
consistency.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Optional, TypeVar

from tick_streamer.cache.store import TickStore
from tick_streamer.core.types import CacheUnavailableError, MalformedEventError
from tick_streamer.models.tick import Tick, cache_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CAPACITY = 5
DEFAULT_TTL_SECONDS = 3600
DEFAULT_TIMEOUT_SECONDS = 2.0


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class RecencyCache:
    """
    Bounded, TTL-expiring tick window per symbol.

    Every store call is bounded by *timeout*; an error or a timeout raises
    CacheUnavailableError. Callers doing read-compare-write on one symbol
    hold key_lock(stock_id) across the read and the put.
    """

    def __init__(
        self,
        store: TickStore,
        *,
        capacity: int = DEFAULT_CAPACITY,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._store = store
        self._capacity = capacity
        self._ttl_seconds = ttl_seconds
        self._timeout = timeout
        self._locks: dict[str, _KeyLock] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @asynccontextmanager
    async def key_lock(self, stock_id: str) -> AsyncIterator[None]:
        """
        Hold the lock serializing writers of one symbol.

        The lock is forgotten once its last holder or waiter leaves, so the
        lock table only holds symbols with work in flight.
        """
        entry = self._locks.get(stock_id)
        if entry is None:
            entry = self._locks[stock_id] = _KeyLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[stock_id]

    async def _bounded(self, operation: str, key: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise CacheUnavailableError(
                f"Cache {operation} timed out after {self._timeout}s",
                operation=operation,
                key=key,
            ) from None

    # ── Writes ────────────────────────────────────────────────────────────────

    async def put(self, tick: Tick) -> None:
        """
        Prepend tick to its symbol's window, trim to capacity, refresh TTL.

        Raises:
            CacheUnavailableError: If the store fails or times out
        """
        key = cache_key(tick.stock_id)
        await self._bounded(
            "put",
            key,
            self._store.push_bounded(key, tick.to_json(), self._capacity, self._ttl_seconds),
        )
        logger.debug("Cached tick for %s", key)

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def peek_latest(self, stock_id: str) -> Optional[Tick]:
        """
        Most recent tick for the symbol, or None if absent or expired.

        An undecodable cached entry is logged and treated as absent.
        """
        key = cache_key(stock_id)
        raw = await self._bounded("peek_latest", key, self._store.head(key))
        if raw is None:
            return None
        try:
            return Tick.from_json(raw)
        except MalformedEventError as e:
            logger.error(f"Corrupt cache entry at {key}: {e}")
            return None

    async def _read_window(self, stock_id: str) -> list[tuple[str, Tick]]:
        key = cache_key(stock_id)
        window: list[tuple[str, Tick]] = []
        for raw in await self._bounded("snapshot", key, self._store.read_all(key)):
            try:
                window.append((raw, Tick.from_json(raw)))
            except MalformedEventError as e:
                logger.warning(f"Skipping corrupt cache entry at {key}: {e}")
        return window

    async def snapshot(self, stock_id: str) -> list[Tick]:
        """Whole window for the symbol, newest first; [] if absent or expired."""
        return [tick for _, tick in await self._read_window(stock_id)]

    async def snapshot_raw(self, stock_id: str) -> list[str]:
        """
        Whole window as the JSON strings stored in the cache.

        Corrupt entries are skipped, same as snapshot().
        """
        return [raw for raw, _ in await self._read_window(stock_id)]

    async def close(self) -> None:
        await self._store.close()
