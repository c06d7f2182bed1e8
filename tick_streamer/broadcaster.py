"""
Tick Broadcaster

Owns the set of live subscriber connections and fans accepted ticks out to
all of them. Connections carry no topic filter; every tick goes to every
connection and clients filter by stockId themselves.

The connection set is guarded by a single asyncio.Lock. push() iterates
over a copy taken under the lock, so register/unregister running alongside
a push never see a half-updated set.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from tick_streamer.cache.recency import RecencyCache
from tick_streamer.models.tick import Tick

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT_SECONDS = 5.0


class Connection(Protocol):
    """Anything that can send a text frame to one subscriber and be closed."""

    async def send(self, message: str) -> None:
        ...

    async def close(self) -> None:
        ...


class TickBroadcaster:
    """
    Best-effort fan-out of ticks to registered connections.

    A connection whose send fails or exceeds *send_timeout* is unregistered
    and closed, so its client sees a disconnect and can reconnect. The other
    connections still receive the tick.
    """

    def __init__(
        self,
        cache: RecencyCache,
        *,
        send_timeout: float = DEFAULT_SEND_TIMEOUT_SECONDS,
    ) -> None:
        self._cache = cache
        self._send_timeout = send_timeout
        self._connections: set[Connection] = set()
        self._lock = asyncio.Lock()
        self._messages_broadcast = 0

    # ── Registry ──────────────────────────────────────────────────────────────

    async def register(self, connection: Connection) -> None:
        """Add a connection to the live set."""
        async with self._lock:
            self._connections.add(connection)
            count = len(self._connections)
        logger.debug(f"Registered connection (total: {count})")

    async def unregister(self, connection: Connection) -> None:
        """Remove a connection. Removing an absent connection is a no-op."""
        async with self._lock:
            if connection not in self._connections:
                return
            self._connections.discard(connection)
            count = len(self._connections)
        logger.debug(f"Unregistered connection (total: {count})")

    # ── Fan-out ───────────────────────────────────────────────────────────────

    async def push(self, tick: Tick) -> int:
        """
        Send tick to every registered connection.

        Returns the number of connections that received it.
        """
        async with self._lock:
            connections = list(self._connections)

        if not connections:
            return 0

        message = tick.to_json()
        results = await asyncio.gather(
            *[self._send(connection, message) for connection in connections],
            return_exceptions=True,
        )
        self._messages_broadcast += 1

        failed = [conn for conn, result in zip(connections, results) if result is not True]
        delivered = len(connections) - len(failed)
        if failed:
            await asyncio.gather(*[self._disconnect(conn) for conn in failed])

        if delivered < len(connections):
            logger.info(
                f"Push {tick.stock_id}: {delivered}/{len(connections)} connections "
                f"({len(connections) - delivered} dropped)"
            )
        return delivered

    async def _send(self, connection: Connection, message: str) -> bool:
        """Send to one connection, return True on success."""
        try:
            await asyncio.wait_for(connection.send(message), timeout=self._send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Send timed out after {self._send_timeout}s, dropping connection")
            return False
        except Exception as e:
            logger.debug(f"Send failed, dropping connection: {e}")
            return False

    async def _disconnect(self, connection: Connection) -> None:
        """Unregister a failed connection and close it, waiting at most *send_timeout*."""
        await self.unregister(connection)
        try:
            await asyncio.wait_for(connection.close(), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Close timed out after {self._send_timeout}s, abandoning connection")
        except Exception as e:
            logger.debug(f"Close failed: {e}")

    # ── Snapshots ─────────────────────────────────────────────────────────────

    async def snapshot_for(self, stock_id: str) -> list[Tick]:
        """
        Current cached window for a symbol, newest first.

        Raises:
            CacheUnavailableError: If the cache cannot be read
        """
        return await self._cache.snapshot(stock_id)

    async def snapshot_payload(self, stock_id: str) -> list[str]:
        """Current cached window as JSON-encoded tick strings."""
        return await self._cache.snapshot_raw(stock_id)

    # ── Stats ─────────────────────────────────────────────────────────────────

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def messages_broadcast(self) -> int:
        return self._messages_broadcast

    async def close_all(self) -> None:
        """Forget every connection (the transport closes the sockets)."""
        async with self._lock:
            self._connections.clear()
