"""
Tick Deduplicator

Suppresses a tick that is identical, field for field, to the most recent
cached tick of its symbol. Only the newest cached entry is compared; a tick
equal to an older entry in the window still counts as new.
"""
from __future__ import annotations

import logging

from tick_streamer.cache.recency import RecencyCache
from tick_streamer.models.tick import Tick

logger = logging.getLogger(__name__)


class Deduplicator:
    """Compares incoming ticks against RecencyCache.peek_latest()."""

    def __init__(self, cache: RecencyCache) -> None:
        self._cache = cache

    async def is_duplicate(self, tick: Tick) -> bool:
        """
        True if the symbol's most recent cached tick equals *tick* exactly.

        Raises:
            CacheUnavailableError: If the cache cannot be read
        """
        latest = await self._cache.peek_latest(tick.stock_id)
        if latest is None or latest != tick:
            return False
        logger.debug("Duplicate tick for %s at %s", tick.stock_id, tick.trading_time)
        return True
