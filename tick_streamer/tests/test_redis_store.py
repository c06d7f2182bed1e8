"""
Tests for tick_streamer.cache.store.RedisTickStore

All Redis I/O is replaced with AsyncMock/MagicMock, no live Redis required.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from tick_streamer.cache import RedisTickStore, TickStore
from tick_streamer.core.types import CacheUnavailableError


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_redis():
    """
    Patch tick_streamer.cache.store.Redis so that Redis.from_url() returns
    an AsyncMock whose pipeline() hands out a MagicMock transaction.
    Yields (mock_redis_instance, mock_pipeline).
    """
    with patch("tick_streamer.cache.store.Redis") as mock_cls:
        instance = AsyncMock()
        instance.ping = AsyncMock(return_value=True)
        instance.lindex = AsyncMock(return_value=None)
        instance.lrange = AsyncMock(return_value=[])

        # pipeline() and its buffered commands are synchronous; execute() is not
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[1, True, True])
        instance.pipeline = MagicMock(return_value=pipe)

        mock_cls.from_url.return_value = instance
        yield instance, pipe


@pytest.fixture
async def connected_store(mock_redis):
    store = RedisTickStore(redis_url="redis://localhost:6379/0", socket_timeout=2.0)
    await store.connect()
    yield store
    await store.close()


# ── Protocol / lifecycle ──────────────────────────────────────────────────────

def test_satisfies_tick_store_protocol():
    assert isinstance(RedisTickStore(redis_url="redis://localhost:6379/0"), TickStore)


async def test_connect_uses_decoded_responses_and_timeouts(mock_redis):
    with patch("tick_streamer.cache.store.Redis") as mock_cls:
        mock_cls.from_url.return_value = mock_redis[0]
        store = RedisTickStore(redis_url="redis://cache:6379/1", socket_timeout=2.0)
        await store.connect()

        mock_cls.from_url.assert_called_once_with(
            "redis://cache:6379/1",
            decode_responses=True,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
        )


async def test_connect_ping_failure_raises_cache_unavailable(mock_redis):
    redis_instance, _ = mock_redis
    redis_instance.ping.side_effect = RedisConnectionError("refused")

    store = RedisTickStore(redis_url="redis://localhost:6379/0")
    with pytest.raises(CacheUnavailableError, match="Cannot connect"):
        await store.connect()


async def test_operations_before_connect_raise():
    store = RedisTickStore(redis_url="redis://localhost:6379/0")
    with pytest.raises(CacheUnavailableError, match="not connected"):
        await store.head("stock:005930")


# ── push_bounded() ────────────────────────────────────────────────────────────

async def test_push_bounded_runs_one_transaction(connected_store, mock_redis):
    redis_instance, pipe = mock_redis

    await connected_store.push_bounded("stock:005930", '{"stockId":"005930"}', 5, 3600)

    redis_instance.pipeline.assert_called_once_with(transaction=True)
    pipe.lpush.assert_called_once_with("stock:005930", '{"stockId":"005930"}')
    pipe.ltrim.assert_called_once_with("stock:005930", 0, 4)
    pipe.expire.assert_called_once_with("stock:005930", 3600)
    pipe.execute.assert_awaited_once()


async def test_push_bounded_redis_error_raises_cache_unavailable(connected_store, mock_redis):
    _, pipe = mock_redis
    pipe.execute.side_effect = RedisError("LOADING")

    with pytest.raises(CacheUnavailableError, match="write failed") as exc_info:
        await connected_store.push_bounded("stock:005930", "{}", 5, 3600)

    assert exc_info.value.operation == "put"


# ── Reads ─────────────────────────────────────────────────────────────────────

async def test_head_reads_index_zero(connected_store, mock_redis):
    redis_instance, _ = mock_redis
    redis_instance.lindex.return_value = '{"stockId":"005930"}'

    assert await connected_store.head("stock:005930") == '{"stockId":"005930"}'
    redis_instance.lindex.assert_called_once_with("stock:005930", 0)


async def test_read_all_reads_whole_list(connected_store, mock_redis):
    redis_instance, _ = mock_redis
    redis_instance.lrange.return_value = ["b", "a"]

    assert await connected_store.read_all("stock:005930") == ["b", "a"]
    redis_instance.lrange.assert_called_once_with("stock:005930", 0, -1)


async def test_read_error_raises_cache_unavailable(connected_store, mock_redis):
    redis_instance, _ = mock_redis
    redis_instance.lrange.side_effect = RedisError("timeout")

    with pytest.raises(CacheUnavailableError) as exc_info:
        await connected_store.read_all("stock:005930")

    assert exc_info.value.operation == "snapshot"
    assert "key=stock:005930" in str(exc_info.value)


async def test_close_releases_connection(mock_redis):
    redis_instance, _ = mock_redis
    async with RedisTickStore(redis_url="redis://localhost:6379/0"):
        pass
    redis_instance.aclose.assert_called_once()
