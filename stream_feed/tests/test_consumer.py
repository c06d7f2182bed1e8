"""
Tests for stream_feed.consumer

All Redis I/O is replaced with AsyncMock, no live Redis required.
"""
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import RedisError, ResponseError

from stream_feed.consumer import ConsumerError, FeedConsumer, FeedMessage
from stream_feed.serializer import serialize

STREAM = "realtime-data"
GROUP = "stock-group"


# ── Helpers ───────────────────────────────────────────────────────────────────

def _make_response(entry_id: bytes, data: dict) -> list:
    """Build a mock XREADGROUP reply holding a single entry."""
    return [[STREAM.encode(), [(entry_id, {b"payload": serialize(data).encode()})]]]


def _make_consumer() -> FeedConsumer:
    return FeedConsumer(
        stream=STREAM,
        group=GROUP,
        consumer="worker-1",
        redis_url="redis://localhost:6379/0",
    )


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_redis():
    """
    Patch stream_feed.consumer.Redis so that Redis.from_url() returns an
    AsyncMock instance. Yields the mock Redis instance.
    """
    with patch("stream_feed.consumer.Redis") as mock_cls:
        instance = AsyncMock()
        instance.ping = AsyncMock(return_value=True)
        instance.xgroup_create = AsyncMock(return_value=True)
        instance.xreadgroup = AsyncMock(return_value=[])
        instance.xack = AsyncMock(return_value=1)
        mock_cls.from_url.return_value = instance
        yield instance


@pytest.fixture
async def connected_consumer(mock_redis):
    """A FeedConsumer that has already called connect()."""
    consumer = _make_consumer()
    await consumer.connect()
    yield consumer
    await consumer.close()


# ── Constructor ───────────────────────────────────────────────────────────────

def test_empty_group_raises_value_error():
    with pytest.raises(ValueError, match="non-empty"):
        FeedConsumer(stream=STREAM, group="", consumer="w", redis_url="redis://x")


def test_properties():
    consumer = _make_consumer()
    assert consumer.stream == STREAM
    assert consumer.name == "worker-1"


# ── connect() ─────────────────────────────────────────────────────────────────

async def test_connect_creates_group_with_mkstream(mock_redis):
    consumer = _make_consumer()
    await consumer.connect()

    mock_redis.xgroup_create.assert_called_once_with(STREAM, GROUP, id="$", mkstream=True)
    await consumer.close()


async def test_connect_tolerates_existing_group(mock_redis):
    mock_redis.xgroup_create.side_effect = ResponseError(
        "BUSYGROUP Consumer Group name already exists"
    )
    consumer = _make_consumer()

    await consumer.connect()  # must not raise

    await consumer.close()


async def test_connect_other_response_error_raises(mock_redis):
    mock_redis.xgroup_create.side_effect = ResponseError("WRONGTYPE")
    consumer = _make_consumer()

    with pytest.raises(ConsumerError, match="consumer group"):
        await consumer.connect()


async def test_connect_ping_failure_raises_consumer_error(mock_redis):
    mock_redis.ping.side_effect = RedisError("refused")

    with pytest.raises(ConsumerError, match="Cannot connect"):
        await _make_consumer().connect()


# ── pull() ────────────────────────────────────────────────────────────────────

async def test_pull_before_connect_raises():
    with pytest.raises(ConsumerError, match="not connected"):
        await _make_consumer().pull(timeout=0.01)


async def test_pull_returns_message(connected_consumer, mock_redis):
    data = {"stockId": "005930", "currentPrice": "70000"}
    mock_redis.xreadgroup.return_value = _make_response(b"1700000000000-0", data)

    message = await connected_consumer.pull(timeout=1.0)

    assert message == FeedMessage(
        message_id="1700000000000-0",
        payload=serialize(data).encode(),
    )
    args, kwargs = mock_redis.xreadgroup.call_args
    assert args == (GROUP, "worker-1", {STREAM: ">"})
    assert kwargs["count"] == 1


async def test_pull_entry_without_payload_field(connected_consumer, mock_redis):
    mock_redis.xreadgroup.return_value = [[STREAM.encode(), [(b"1-0", {b"other": b"x"})]]]

    message = await connected_consumer.pull(timeout=1.0)

    assert message.message_id == "1-0"
    assert message.payload is None


async def test_pull_skips_empty_reply_then_returns_message(connected_consumer, mock_redis):
    mock_redis.xreadgroup.side_effect = [
        [],
        _make_response(b"2-0", {"stockId": "000660"}),
    ]

    message = await connected_consumer.pull()

    assert message.message_id == "2-0"
    assert mock_redis.xreadgroup.call_count == 2


async def test_pull_timeout_returns_none(connected_consumer, mock_redis):
    mock_redis.xreadgroup.return_value = []

    assert await connected_consumer.pull(timeout=0.05) is None


async def test_pull_redis_error_raises_consumer_error(connected_consumer, mock_redis):
    mock_redis.xreadgroup.side_effect = RedisError("broken pipe")

    with pytest.raises(ConsumerError, match="Redis error"):
        await connected_consumer.pull(timeout=1.0)


# ── ack() ─────────────────────────────────────────────────────────────────────

async def test_ack_calls_xack(connected_consumer, mock_redis):
    await connected_consumer.ack("3-0")
    mock_redis.xack.assert_called_once_with(STREAM, GROUP, "3-0")


async def test_ack_redis_error_raises(connected_consumer, mock_redis):
    mock_redis.xack.side_effect = RedisError("timeout")
    with pytest.raises(ConsumerError, match="ack failed"):
        await connected_consumer.ack("3-0")


# ── Context manager ───────────────────────────────────────────────────────────

async def test_context_manager_connects_and_closes(mock_redis):
    async with _make_consumer() as consumer:
        assert consumer._redis is not None
        mock_redis.ping.assert_called_once()

    mock_redis.aclose.assert_called_once()
