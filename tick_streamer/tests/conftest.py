"""
Shared fixtures for tick_streamer tests.

No live Redis or sockets: the recency cache runs on InMemoryTickStore with
a controllable clock, and subscriber connections are plain fakes.
"""
from __future__ import annotations

import pytest

from tick_streamer.broadcaster import TickBroadcaster
from tick_streamer.cache import InMemoryTickStore, RecencyCache


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeConnection:
    """Subscriber connection recording every frame it is sent."""

    def __init__(self, name: str = "client") -> None:
        self.name = name
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True

    def __repr__(self) -> str:
        return f"FakeConnection({self.name})"


class BrokenConnection(FakeConnection):
    """Connection whose remote end has gone away."""

    async def send(self, message: str) -> None:
        raise ConnectionResetError("peer closed")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryTickStore:
    return InMemoryTickStore(clock=clock)


@pytest.fixture
def cache(store) -> RecencyCache:
    return RecencyCache(store, capacity=5, ttl_seconds=3600, timeout=1.0)


@pytest.fixture
def broadcaster(cache) -> TickBroadcaster:
    return TickBroadcaster(cache, send_timeout=0.5)


@pytest.fixture
def make_connection():
    """Factory for recording connections: make_connection("a")."""
    return FakeConnection


@pytest.fixture
def make_broken_connection():
    """Factory for connections whose send always fails."""
    return BrokenConnection
