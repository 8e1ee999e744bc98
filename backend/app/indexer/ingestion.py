"""Per-feed polling workers that feed the calculator channel."""

from __future__ import annotations

import asyncio
import logging

from .channel import FeedChannel
from .errors import ChannelClosedError, StorageError
from .interface import PriceSource
from .models import FeedObservation, PriceFeed, utc_now
from .storage import PriceStore

logger = logging.getLogger(__name__)

POLL_INTERVAL = 5.0
FAILURE_ESCALATION_THRESHOLD = 5


class FeedWorker:
    """Polls one feed's source on a fixed cadence and publishes observations.

    A failed fetch is never fatal: the worker counts consecutive failures,
    escalates the log level once the count reaches the threshold, and polls
    again on the next interval. The worker stops on the shutdown signal, or
    when the channel is closed and there is no store left to write to.
    """

    def __init__(
        self,
        feed: PriceFeed,
        source: PriceSource,
        channel: FeedChannel,
        shutdown: asyncio.Event,
        store: PriceStore | None = None,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        self.feed = feed
        self._source = source
        self._channel = channel
        self._shutdown = shutdown
        self._store = store
        self._interval = poll_interval
        self.consecutive_failures = 0

    async def run(self) -> None:
        logger.info("Feed worker started: %s (%s %s)", self.feed.id, self.feed.source, self.feed.symbol)
        while not self._shutdown.is_set():
            if not await self.poll_once():
                break
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Feed worker stopped: %s", self.feed.id)

    async def poll_once(self) -> bool:
        """Fetch, persist and publish one observation. False means stop the worker."""
        try:
            price = await self._source.fetch(self.feed.symbol)
        except Exception as e:
            self.consecutive_failures += 1
            if self.consecutive_failures >= FAILURE_ESCALATION_THRESHOLD:
                logger.error(
                    "Failed to fetch %s %s %d times consecutively: %s",
                    self.feed.source,
                    self.feed.symbol,
                    self.consecutive_failures,
                    e,
                )
            else:
                logger.warning("Failed to fetch %s %s: %s", self.feed.source, self.feed.symbol, e)
            return True

        self.consecutive_failures = 0
        observation = FeedObservation(feed_id=self.feed.id, price=price, timestamp=utc_now())
        logger.debug("Observed %s %s = %s", self.feed.source, self.feed.symbol, price)

        if self._store is not None:
            try:
                await asyncio.to_thread(self._store.save, observation)
            except StorageError as e:
                logger.error("Failed to persist observation for %s: %s", self.feed.id, e)

        try:
            await self._channel.send(observation)
        except ChannelClosedError:
            if self._store is None:
                logger.info("Channel closed and no store configured; stopping worker %s", self.feed.id)
                return False
            logger.warning("Channel closed; worker %s keeps persisting observations", self.feed.id)
        return True
