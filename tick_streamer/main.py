"""
Tick Streamer Service Entry Point

Runs the ingestion pipeline(s) and the WebSocket server in one event loop:
  - one sequential pipeline worker per configured broker stream
  - broadcaster + WebSocket/HTTP snapshot server for clients

Usage:
    python -m tick_streamer.main             # live: Redis stream -> Redis cache
    python -m tick_streamer.main --mock      # live + mock producer writing to the stream
    python -m tick_streamer.main --offline   # no Redis: in-memory cache, mock ticks
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from dotenv import load_dotenv

load_dotenv(".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("tick_streamer")


async def run(*, use_mock: bool = False, offline: bool = False) -> None:
    from stream_feed import FeedConsumer, FeedProducer

    from tick_streamer.broadcaster import TickBroadcaster
    from tick_streamer.cache import InMemoryTickStore, RecencyCache, RedisTickStore
    from tick_streamer.config import settings
    from tick_streamer.mock_feed import run_mock_feed
    from tick_streamer.pipeline import IngestionPipeline
    from tick_streamer.ws_server import TickWebSocketServer

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    # ── Recency cache ──────────────────────────────────────────────
    if offline:
        store = InMemoryTickStore()
        logger.info("Offline mode, in-memory recency cache")
    else:
        store = RedisTickStore(
            settings.cache.redis_url,
            socket_timeout=settings.cache.timeout_seconds,
        )

    cache = RecencyCache(
        store,
        capacity=settings.cache.capacity,
        ttl_seconds=settings.cache.ttl_seconds,
        timeout=settings.cache.timeout_seconds,
    )
    broadcaster = TickBroadcaster(
        cache, send_timeout=settings.websocket_server.send_timeout_seconds
    )
    ws_server = TickWebSocketServer(
        broadcaster,
        host=settings.websocket_server.host,
        port=settings.websocket_server.port,
    )

    pipelines: list[IngestionPipeline] = []
    consumers: list[FeedConsumer] = []
    producer: FeedProducer | None = None
    tasks: list[asyncio.Task] = []

    try:
        if not offline:
            await store.connect()

        # ── Broker ─────────────────────────────────────────────────
        if offline:
            pipeline = IngestionPipeline(cache, broadcaster, name="offline")
            pipelines.append(pipeline)
        else:
            for stream in settings.broker.streams:
                consumer = FeedConsumer(
                    stream=stream,
                    group=settings.broker.group,
                    consumer=settings.broker.consumer_name,
                    redis_url=settings.broker.redis_url,
                )
                await consumer.connect()
                consumers.append(consumer)
                pipelines.append(IngestionPipeline(cache, broadcaster, name=stream))

            if use_mock:
                producer = FeedProducer(settings.broker.streams[0], settings.broker.redis_url)
                await producer.connect()

        # ── Start services ─────────────────────────────────────────
        await ws_server.start()

        if offline:
            tasks.append(
                asyncio.create_task(
                    run_mock_feed(pipelines[0].process, shutdown=shutdown_event)
                )
            )
            logger.info("Mock ticks feed the pipeline directly")
        else:
            for pipeline, consumer in zip(pipelines, consumers):
                tasks.append(
                    asyncio.create_task(
                        pipeline.run(
                            consumer,
                            shutdown_event,
                            poll_timeout=settings.broker.poll_timeout_seconds,
                        )
                    )
                )
            if producer is not None:
                tasks.append(
                    asyncio.create_task(run_mock_feed(producer.publish, shutdown=shutdown_event))
                )
                logger.info(f"Mock producer writing to '{producer.stream}'")

        logger.info(f"Tick streamer running with {len(pipelines)} pipeline(s)")

        # ── Wait for shutdown ──────────────────────────────────────
        await shutdown_event.wait()

    finally:
        # ── Teardown ───────────────────────────────────────────────
        logger.info("Shutting down...")
        shutdown_event.set()

        # Workers finish their in-flight entry, then return
        for result in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(result, Exception):
                logger.error(f"Worker exited with error: {result}")

        await ws_server.stop()

        for consumer in consumers:
            await consumer.close()
        if producer is not None:
            await producer.close()
        await cache.close()

        ws_stats = ws_server.get_stats()
        for pipeline in pipelines:
            stats = pipeline.stats
            logger.info(
                f"Final '{pipeline.name}': received: {stats.messages_received}, "
                f"accepted: {stats.ticks_accepted}, duplicates: {stats.duplicates_skipped}, "
                f"malformed: {stats.malformed_dropped}, cache failures: {stats.cache_failures}"
            )
        logger.info(
            f"Final: clients served: {ws_stats.total_connections}, "
            f"broadcasts: {ws_stats.messages_broadcast}, "
            f"snapshots: {ws_stats.snapshots_served}"
        )


def cli() -> None:
    from stream_feed import ConsumerError, ProducerError

    from tick_streamer.config import ConfigurationError
    from tick_streamer.core.types import CacheUnavailableError

    parser = argparse.ArgumentParser(description="tick streamer")
    parser.add_argument("--mock", action="store_true", help="Also run a mock producer writing to the broker stream")
    parser.add_argument("--offline", action="store_true", help="Run without Redis: in-memory cache fed by mock ticks")
    args = parser.parse_args()

    try:
        asyncio.run(run(use_mock=args.mock, offline=args.offline))
    except (ConfigurationError, ConsumerError, ProducerError, CacheUnavailableError) as e:
        logger.error(f"Startup failed: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
