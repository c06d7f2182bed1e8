"""
Feed Producer

Generic Redis Streams producer. Appends plain dict payloads to one stream;
it knows nothing about ticks.

Usage:
    producer = FeedProducer(stream="realtime-data", redis_url="redis://localhost:6379/0")
    await producer.connect()

    await producer.publish({"stockId": "005930", "currentPrice": "70000"})

    await producer.close()

Context manager usage:
    async with FeedProducer(stream=..., redis_url=...) as producer:
        await producer.publish(data)
"""
from __future__ import annotations

import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .serializer import PAYLOAD_FIELD, serialize

logger = logging.getLogger(__name__)


class ProducerError(Exception):
    """Raised when a publish operation fails."""


class FeedProducer:
    """
    Appends JSON-serializable dicts to a Redis stream.

    Args:
        stream:    Stream key to append to.
        redis_url: Redis connection URL.
        maxlen:    Approximate cap on stream length (None keeps everything).
    """

    def __init__(self, stream: str, redis_url: str, maxlen: int | None = 10_000) -> None:
        self._stream = stream
        self._redis_url = redis_url
        self._maxlen = maxlen
        self._redis: Redis | None = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the Redis connection."""
        self._redis = Redis.from_url(self._redis_url, decode_responses=False)
        try:
            await self._redis.ping()
            logger.info("FeedProducer connected to Redis at %s", self._redis_url)
        except RedisError as exc:
            raise ProducerError(f"Cannot connect to Redis: {exc}") from exc

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("FeedProducer disconnected from Redis")

    async def __aenter__(self) -> FeedProducer:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # ── Publish ───────────────────────────────────────────────────────────────

    async def publish(self, data: dict[str, Any]) -> str:
        """
        Append data to the stream.

        Returns:
            The entry ID assigned by Redis.

        Raises:
            ProducerError: If not connected or Redis returns an error.
            SerializationError: If data cannot be serialized.
        """
        if self._redis is None:
            raise ProducerError("FeedProducer is not connected, call connect() first")

        payload = serialize(data)
        try:
            entry_id = await self._redis.xadd(
                self._stream,
                {PAYLOAD_FIELD: payload},
                maxlen=self._maxlen,
                approximate=True,
            )
        except RedisError as exc:
            raise ProducerError(f"Redis XADD failed on stream '{self._stream}'") from exc

        if isinstance(entry_id, bytes):
            entry_id = entry_id.decode("utf-8")
        logger.debug("Appended entry %s to '%s'", entry_id, self._stream)
        return entry_id

    @property
    def stream(self) -> str:
        """The stream key this producer appends to."""
        return self._stream
