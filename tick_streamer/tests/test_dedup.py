"""
Tests for tick_streamer.dedup
"""
from unittest.mock import AsyncMock

import pytest

from tick_streamer.core.types import CacheUnavailableError
from tick_streamer.dedup import Deduplicator
from tick_streamer.models import Tick


@pytest.fixture
def dedup(cache) -> Deduplicator:
    return Deduplicator(cache)


async def test_first_tick_is_not_duplicate(dedup):
    assert await dedup.is_duplicate(Tick(stock_id="005930", current_price="70000")) is False


async def test_identical_to_latest_is_duplicate(dedup, cache):
    tick = Tick(stock_id="005930", current_price="70000", trading_time="090001")
    await cache.put(tick)

    assert await dedup.is_duplicate(Tick(stock_id="005930", current_price="70000", trading_time="090001"))


@pytest.mark.parametrize(
    "field,value",
    [
        ("current_price", "70001"),
        ("fluctuation_price", "1"),
        ("fluctuation_rate", "0.01"),
        ("fluctuation_sign", "2"),
        ("transaction_volume", "10"),
        ("trading_time", "090002"),
    ],
)
async def test_any_field_difference_is_not_duplicate(dedup, cache, field, value):
    await cache.put(Tick(stock_id="005930", current_price="70000", trading_time="090001"))
    base = {"stock_id": "005930", "current_price": "70000", "trading_time": "090001"}
    base[field] = value

    assert await dedup.is_duplicate(Tick(**base)) is False


async def test_comparison_is_exact_string_equality(dedup, cache):
    await cache.put(Tick(stock_id="005930", current_price="70000"))
    assert await dedup.is_duplicate(Tick(stock_id="005930", current_price="70000.0")) is False


async def test_only_latest_entry_is_compared(dedup, cache):
    """A tick equal to an older entry in the window is still new."""
    older = Tick(stock_id="005930", current_price="70000")
    await cache.put(older)
    await cache.put(Tick(stock_id="005930", current_price="70100"))

    assert await dedup.is_duplicate(older) is False


async def test_other_symbol_does_not_match(dedup, cache):
    await cache.put(Tick(stock_id="005930", current_price="70000"))
    assert await dedup.is_duplicate(Tick(stock_id="000660", current_price="70000")) is False


async def test_expired_latest_is_not_duplicate(dedup, cache, clock):
    tick = Tick(stock_id="005930", current_price="70000")
    await cache.put(tick)
    clock.advance(3600)

    assert await dedup.is_duplicate(tick) is False


async def test_cache_failure_propagates():
    cache = AsyncMock()
    cache.peek_latest.side_effect = CacheUnavailableError("down", operation="peek_latest")

    with pytest.raises(CacheUnavailableError):
        await Deduplicator(cache).is_duplicate(Tick(stock_id="005930"))
