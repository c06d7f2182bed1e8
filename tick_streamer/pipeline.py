"""
Ingestion Pipeline

Sequential worker for one broker stream:

    broker entry -> decode -> normalize -> dedup -> cache put -> broadcast

Each entry is processed to completion (or dropped) and acknowledged before
the next one is pulled. Dropped entries are acknowledged too: nothing is
retried or redelivered.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Union

from stream_feed import ConsumerError, FeedConsumer, SerializationError, deserialize

from tick_streamer.broadcaster import TickBroadcaster
from tick_streamer.cache.recency import RecencyCache
from tick_streamer.core.types import (
    CacheUnavailableError,
    MalformedEventError,
    ReconnectionState,
)
from tick_streamer.dedup import Deduplicator
from tick_streamer.models.tick import sign_label
from tick_streamer.normalizer import normalize_tick

logger = logging.getLogger(__name__)

RawMessage = Union[str, bytes, Mapping[str, Any], None]


class ProcessResult(str, Enum):
    """What happened to one broker entry."""

    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    MALFORMED = "malformed"
    CACHE_UNAVAILABLE = "cache_unavailable"


@dataclass
class PipelineStats:
    """Counters for one pipeline worker."""

    messages_received: int = 0
    ticks_accepted: int = 0
    duplicates_skipped: int = 0
    malformed_dropped: int = 0
    cache_failures: int = 0
    deliveries: int = 0


def decode_message(raw: RawMessage) -> Mapping[str, Any]:
    """
    Decode a broker payload into a mapping.

    Raises:
        MalformedEventError: If the payload is missing or not a JSON object
    """
    if raw is None:
        raise MalformedEventError("Broker entry has no payload", field="payload")
    if isinstance(raw, Mapping):
        return raw
    try:
        return deserialize(raw)
    except SerializationError as e:
        raise MalformedEventError(str(e), field="payload", value=raw) from e


class IngestionPipeline:
    """
    Drives normalizer -> deduplicator -> recency cache -> broadcaster.

    The dedup read and the cache write for one symbol run under that
    symbol's key lock, so concurrent producers cannot interleave them.
    """

    def __init__(
        self,
        cache: RecencyCache,
        broadcaster: TickBroadcaster,
        *,
        deduplicator: Optional[Deduplicator] = None,
        name: str = "pipeline",
    ) -> None:
        self._cache = cache
        self._broadcaster = broadcaster
        self._deduplicator = deduplicator or Deduplicator(cache)
        self._name = name
        self._stats = PipelineStats()

    @property
    def stats(self) -> PipelineStats:
        return self._stats

    @property
    def name(self) -> str:
        return self._name

    async def process(self, raw: RawMessage) -> ProcessResult:
        """
        Run one broker payload through the pipeline.

        Malformed payloads and cache failures are logged and dropped; they
        never raise out of this method.
        """
        self._stats.messages_received += 1

        try:
            tick = normalize_tick(decode_message(raw))
        except MalformedEventError as e:
            self._stats.malformed_dropped += 1
            logger.warning(
                f"Dropping malformed tick: {e}",
                extra={"pipeline": self._name, "error": str(e)},
            )
            return ProcessResult.MALFORMED

        try:
            async with self._cache.key_lock(tick.stock_id):
                if await self._deduplicator.is_duplicate(tick):
                    self._stats.duplicates_skipped += 1
                    return ProcessResult.DUPLICATE
                await self._cache.put(tick)
        except CacheUnavailableError as e:
            self._stats.cache_failures += 1
            logger.error(
                f"Dropping tick for {tick.stock_id}, cache unavailable: {e}",
                extra={"pipeline": self._name, "stock_id": tick.stock_id, "error": str(e)},
            )
            return ProcessResult.CACHE_UNAVAILABLE

        self._stats.ticks_accepted += 1
        delivered = await self._broadcaster.push(tick)
        self._stats.deliveries += delivered
        logger.debug(
            f"Accepted {tick.stock_id} @ {tick.current_price} {sign_label(tick.fluctuation_sign)} "
            f"({tick.trading_time}), "
            f"pushed to {delivered} client(s)"
        )
        return ProcessResult.ACCEPTED

    async def run(
        self,
        consumer: FeedConsumer,
        shutdown: asyncio.Event,
        *,
        poll_timeout: float = 1.0,
    ) -> None:
        """
        Pull, process and ack entries until *shutdown* is set.

        Broker read errors are retried with exponential backoff. The entry
        in flight when shutdown is requested is finished first.
        """
        backoff = ReconnectionState()
        logger.info(f"Pipeline '{self._name}' consuming '{consumer.stream}'")

        while not shutdown.is_set():
            try:
                message = await consumer.pull(timeout=poll_timeout)
            except ConsumerError as e:
                delay = backoff.next_delay()
                logger.error(
                    f"Broker read failed (attempt {backoff.attempt_count}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                try:
                    await asyncio.wait_for(shutdown.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
                continue

            backoff.reset()
            if message is None:
                continue

            try:
                await self.process(message.payload)
            except Exception:
                logger.exception(
                    f"Unexpected error processing entry {message.message_id}, dropping it"
                )

            try:
                await consumer.ack(message.message_id)
            except ConsumerError as e:
                logger.error(f"Failed to ack entry {message.message_id}: {e}")

        logger.info(f"Pipeline '{self._name}' stopped")
