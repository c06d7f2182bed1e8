"""
Mock tick feed for running without the upstream market-data producer.

Random-walks a handful of KRX symbols and fires raw tick dicts through a
callback, the same shape the upstream producer writes to the broker. A
share of ticks are exact repeats (exercising dedup) and a share are partial
payloads with only stockId and currentPrice (exercising defaults).

Usage:
    python -m tick_streamer.main --mock
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

# (stockId, previous close)
SYMBOLS: list[tuple[str, int]] = [
    ("005930", 70_000),   # Samsung Electronics
    ("000660", 180_000),  # SK hynix
    ("035420", 190_000),  # NAVER
    ("005380", 240_000),  # Hyundai Motor
    ("035720", 45_000),   # Kakao
]

REPEAT_PROBABILITY = 0.1
PARTIAL_PROBABILITY = 0.05
PRICE_LIMIT = 0.30  # KRX daily limit, +/-30%

TickCallback = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass
class _SymbolState:
    stock_id: str
    prev_close: int
    price: int
    volume: int = 0
    last: dict[str, str] | None = None


def _sign(price: int, prev_close: int) -> str:
    if price >= int(prev_close * (1 + PRICE_LIMIT)):
        return "1"
    if price <= int(prev_close * (1 - PRICE_LIMIT)):
        return "4"
    if price > prev_close:
        return "2"
    if price < prev_close:
        return "5"
    return "3"


def _next_tick(state: _SymbolState) -> dict[str, str]:
    step = max(1, state.prev_close // 1000)
    upper = int(state.prev_close * (1 + PRICE_LIMIT))
    lower = int(state.prev_close * (1 - PRICE_LIMIT))
    state.price = min(upper, max(lower, state.price + random.randint(-3, 3) * step))
    state.volume += random.randint(1, 500)

    change = state.price - state.prev_close
    return {
        "stockId": state.stock_id,
        "currentPrice": str(state.price),
        "fluctuationPrice": str(change),
        "fluctuationRate": f"{change / state.prev_close * 100:.2f}",
        "fluctuationSign": _sign(state.price, state.prev_close),
        "transactionVolume": str(state.volume),
        "tradingTime": datetime.now().strftime("%H%M%S"),
    }


def make_tick(state: _SymbolState) -> dict[str, str]:
    """Next raw payload for a symbol: a repeat, a partial, or a fresh tick."""
    roll = random.random()
    if state.last is not None and roll < REPEAT_PROBABILITY:
        return dict(state.last)
    tick = _next_tick(state)
    if roll < REPEAT_PROBABILITY + PARTIAL_PROBABILITY:
        tick = {"stockId": tick["stockId"], "currentPrice": tick["currentPrice"]}
    state.last = tick
    return dict(tick)


async def run_mock_feed(
    callback: TickCallback,
    *,
    interval_range: tuple[float, float] = (0.2, 1.0),
    shutdown: asyncio.Event | None = None,
) -> None:
    """Fire random ticks through the callback at realistic intervals."""
    states = [_SymbolState(stock_id, close, close) for stock_id, close in SYMBOLS]

    while shutdown is None or not shutdown.is_set():
        await callback(make_tick(random.choice(states)))

        delay = random.uniform(*interval_range)
        try:
            if shutdown:
                await asyncio.wait_for(shutdown.wait(), timeout=delay)
                break
            else:
                await asyncio.sleep(delay)
        except asyncio.TimeoutError:
            pass
