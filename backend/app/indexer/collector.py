"""Collector process: ingestion, calculation and broadcast wired together."""

from __future__ import annotations

import asyncio
import logging

from .calculator import CalculationEngine, IndexCalculator
from .channel import FeedChannel
from .config import CollectorConfig
from .errors import IndexerError, ListenerBindError
from .factory import create_price_source
from .ingestion import POLL_INTERVAL, FeedWorker
from .interface import PriceSource
from .models import PriceFeed
from .server import bind_listener, create_server
from .storage import PriceStore
from .stream import SessionRegistry, create_app

logger = logging.getLogger(__name__)

SESSION_CLOSE_GRACE = 5.0


def distinct_feeds(config: CollectorConfig) -> list[PriceFeed]:
    """One feed per id, in first-reference order, even if several indices share it."""
    feeds: dict[str, PriceFeed] = {}
    for index in config.index_definitions():
        for feed in index.feeds:
            feeds.setdefault(feed.id, feed)
    return list(feeds.values())


async def run_collector(
    config: CollectorConfig,
    shutdown: asyncio.Event | None = None,
    poll_interval: float = POLL_INTERVAL,
) -> None:
    """Run until the shutdown event is set (SIGINT/SIGTERM set it too).

    Raises ListenerBindError/AddressInUseError before any worker starts if the
    broadcast address cannot be bound, and StorageError if the configured
    database cannot be opened.
    """
    shutdown = shutdown or asyncio.Event()
    ws_config = config.websocket

    store: PriceStore | None = None
    if config.database.enabled:
        store = await asyncio.to_thread(PriceStore, config.database.url)
        await asyncio.to_thread(store.apply_retention, config.database.retention_days)

    try:
        sock = bind_listener(ws_config.host, ws_config.port)
    except ListenerBindError:
        if store is not None:
            store.close()
        raise

    channel = FeedChannel()
    calculator = IndexCalculator(config.index_definitions(), channel)
    engine = CalculationEngine(calculator)
    registry = SessionRegistry()
    app = create_app(
        engine,
        shutdown,
        registry,
        tick_interval=ws_config.tick_interval,
        heartbeat_interval=ws_config.heartbeat_interval,
    )
    server = create_server(app, shutdown, ws_config.heartbeat_interval)

    sources: dict[str, PriceSource] = {}
    workers: list[asyncio.Task] = []
    for feed in distinct_feeds(config):
        if feed.source not in sources:
            sources[feed.source] = create_price_source(feed.source)
        worker = FeedWorker(feed, sources[feed.source], channel, shutdown, store, poll_interval)
        workers.append(asyncio.create_task(worker.run(), name=f"feed-{feed.id}"))

    server_task = asyncio.create_task(server.serve_socket(sock), name="broadcast-server")
    logger.info(
        "Collector running: %d feeds, %d indices, stream on ws://%s",
        len(workers),
        len(calculator.indices),
        ws_config.address,
    )

    try:
        stopper = asyncio.ensure_future(shutdown.wait())
        done, _ = await asyncio.wait({stopper, server_task}, return_when=asyncio.FIRST_COMPLETED)
        if server_task in done and not shutdown.is_set():
            stopper.cancel()
            server_task.result()
            raise IndexerError("broadcast server exited unexpectedly")
    finally:
        logger.info("Shutting down collector")
        shutdown.set()
        channel.close()

        if not await registry.wait_closed(SESSION_CLOSE_GRACE):
            logger.warning("%d sessions still open after %.0fs", len(registry), SESSION_CLOSE_GRACE)
        server.should_exit = True
        await asyncio.gather(server_task, return_exceptions=True)

        # In-flight fetches are allowed to finish; workers exit at their next check.
        for result in await asyncio.gather(*workers, return_exceptions=True):
            if isinstance(result, Exception):
                logger.error("Feed worker ended with error: %s", result)

        for source in sources.values():
            await source.close()
        if store is not None:
            store.close()
        logger.info("Graceful shutdown complete")
