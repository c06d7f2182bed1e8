"""
Feed Consumer

Reads one Redis stream through a consumer group and exposes a simple
pull()/ack() interface. Entries are delivered in stream order to exactly
one consumer of the group; an entry stays pending until it is acked.

Usage:
    consumer = FeedConsumer(
        stream="realtime-data",
        group="stock-group",
        consumer="tick-streamer-1",
        redis_url="redis://localhost:6379/0",
    )
    await consumer.connect()

    while True:
        message = await consumer.pull(timeout=1.0)
        if message is None:
            continue
        handle(message.payload)
        await consumer.ack(message.message_id)

    await consumer.close()

Context manager usage:
    async with FeedConsumer(stream=..., group=..., consumer=..., redis_url=...) as c:
        message = await c.pull()
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from .serializer import PAYLOAD_FIELD

logger = logging.getLogger(__name__)

# Longest single XREADGROUP block, so pull() can honour its timeout
_POLL_BLOCK_SECONDS = 1.0


class ConsumerError(Exception):
    """Raised when a consumer operation fails."""


@dataclass(frozen=True)
class FeedMessage:
    """One stream entry as delivered to the consumer."""

    message_id: str
    payload: Optional[bytes]


def _as_str(value: str | bytes) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class FeedConsumer:
    """
    Consumes a Redis stream as one member of a consumer group.

    Args:
        stream:    Stream key (the broker "topic", e.g. "realtime-data").
        group:     Consumer group name (e.g. "stock-group").
        consumer:  This consumer's name within the group.
        redis_url: Redis connection URL (e.g. "redis://localhost:6379/0").
    """

    def __init__(self, stream: str, group: str, consumer: str, redis_url: str) -> None:
        if not stream or not group or not consumer:
            raise ValueError("stream, group and consumer must be non-empty")
        self._stream = stream
        self._group = group
        self._consumer = consumer
        self._redis_url = redis_url
        self._redis: Redis | None = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the Redis connection and make sure the consumer group exists."""
        self._redis = Redis.from_url(self._redis_url, decode_responses=False)
        try:
            await self._redis.ping()
        except RedisError as exc:
            raise ConsumerError(f"Cannot connect to Redis: {exc}") from exc

        try:
            await self._redis.xgroup_create(
                self._stream, self._group, id="$", mkstream=True
            )
            logger.info("Created consumer group '%s' on '%s'", self._group, self._stream)
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise ConsumerError(f"Cannot create consumer group: {exc}") from exc
        except RedisError as exc:
            raise ConsumerError(f"Cannot create consumer group: {exc}") from exc

        logger.info(
            "FeedConsumer '%s' joined group '%s' on stream '%s'",
            self._consumer,
            self._group,
            self._stream,
        )

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("FeedConsumer '%s' disconnected from Redis", self._consumer)

    async def __aenter__(self) -> FeedConsumer:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # ── Main interface ────────────────────────────────────────────────────────

    async def pull(self, timeout: float | None = None) -> FeedMessage | None:
        """
        Block until the stream delivers the next entry for this consumer.

        Args:
            timeout: Seconds to wait before returning None.
                     Pass None (default) to block indefinitely.

        Returns:
            The next FeedMessage, or None if timeout expires. An entry without
            a payload field is returned with payload=None.

        Raises:
            ConsumerError: If not connected or the Redis connection breaks.
        """
        if self._redis is None:
            raise ConsumerError("FeedConsumer is not connected, call connect() first")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        while True:
            block = _POLL_BLOCK_SECONDS
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                block = min(remaining, _POLL_BLOCK_SECONDS)

            try:
                response = await self._redis.xreadgroup(
                    self._group,
                    self._consumer,
                    {self._stream: ">"},
                    count=1,
                    block=max(1, int(block * 1000)),
                )
            except RedisError as exc:
                raise ConsumerError(f"Redis error while reading stream: {exc}") from exc

            if not response:
                # Nothing within this block window; yield before polling again
                await asyncio.sleep(0)
                continue

            _, entries = response[0]
            if not entries:
                continue

            message_id, fields = entries[0]
            fields = fields or {}
            payload = fields.get(PAYLOAD_FIELD.encode(), fields.get(PAYLOAD_FIELD))
            if isinstance(payload, str):
                payload = payload.encode("utf-8")
            return FeedMessage(message_id=_as_str(message_id), payload=payload)

    async def ack(self, message_id: str) -> None:
        """
        Acknowledge an entry so it is never redelivered to the group.

        Raises:
            ConsumerError: If not connected or Redis returns an error.
        """
        if self._redis is None:
            raise ConsumerError("FeedConsumer is not connected, call connect() first")
        try:
            await self._redis.xack(self._stream, self._group, message_id)
        except RedisError as exc:
            raise ConsumerError(f"Redis ack failed for '{message_id}': {exc}") from exc

    @property
    def stream(self) -> str:
        """The stream key this consumer reads."""
        return self._stream

    @property
    def name(self) -> str:
        """This consumer's name within its group."""
        return self._consumer
