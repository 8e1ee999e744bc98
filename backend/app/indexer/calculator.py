"""Index calculation: weighted composition and smoothing of feed prices."""

from __future__ import annotations

import asyncio
import logging
from threading import Lock

from .channel import FeedChannel
from .models import IndexDefinition, IndexResult, utc_now
from .state import FeedState, IndexState

logger = logging.getLogger(__name__)


class IndexCalculator:
    """Sole owner of FeedState and IndexState.

    All mutation happens inside calculate_indices(), one call at a time.
    Readers get copies through the snapshot accessors.
    """

    def __init__(self, indices: list[IndexDefinition], channel: FeedChannel) -> None:
        self._indices = list(indices)
        self._channel = channel
        self._lock = Lock()
        self._feeds: dict[str, FeedState] = {}
        self._index_states: dict[str, IndexState] = {}
        self._empty_cycles = 0

        for index in self._indices:
            self._index_states[index.name] = IndexState()
            for feed in index.feeds:
                self._feeds.setdefault(feed.id, FeedState())

    @property
    def indices(self) -> list[IndexDefinition]:
        return list(self._indices)

    def calculate_indices(self) -> list[IndexResult]:
        """Apply queued observations, then compute one result per complete index.

        Indices with any feed that has not reported a positive price are
        skipped for this cycle. Results follow the configured index order.
        """
        with self._lock:
            self._apply_updates()

            timestamp = utc_now()
            results: list[IndexResult] = []
            for index in self._indices:
                raw = self._raw_value(index)
                if raw is None:
                    continue

                state = self._index_states[index.name]
                smoothed = index.smoothing.apply(state.history, raw)
                state.record(smoothed)
                logger.debug(
                    "Index %s: raw=%s smoothed=%s (%s)",
                    index.name,
                    raw,
                    smoothed,
                    index.smoothing.name,
                )
                results.append(IndexResult(name=index.name, value=smoothed, timestamp=timestamp))

            if not results:
                self._empty_cycles += 1
                logger.warning("No index could be calculated: missing price data")
            return results

    # --- Snapshots ---

    def feed_value(self, feed_id: str) -> float | None:
        with self._lock:
            state = self._feeds.get(feed_id)
            return state.value if state else None

    def feed_history(self, feed_id: str) -> list[float]:
        with self._lock:
            state = self._feeds.get(feed_id)
            return list(state.history) if state else []

    def index_history(self, name: str) -> list[float]:
        with self._lock:
            state = self._index_states.get(name)
            return list(state.history) if state else []

    @property
    def empty_cycles(self) -> int:
        """Number of cycles that produced no result at all."""
        return self._empty_cycles

    # --- Internal ---

    def _apply_updates(self) -> int:
        observations = self._channel.drain()
        for observation in observations:
            state = self._feeds.get(observation.feed_id)
            if state is None:
                logger.debug("Ignoring observation for unknown feed %s", observation.feed_id)
                continue
            state.record(observation.price)
        if observations:
            logger.debug("Applied %d feed updates", len(observations))
        return len(observations)

    def _raw_value(self, index: IndexDefinition) -> float | None:
        weighted_sum = 0.0
        total_weight = 0
        for feed in index.feeds:
            state = self._feeds[feed.id]
            if not state.has_data:
                return None
            weighted_sum += state.value * (feed.weight / 100)
            total_weight += feed.weight
        if total_weight == 0:
            return None
        return weighted_sum / (total_weight / 100)


class CalculationEngine:
    """Single task that serves "compute now" requests against the calculator.

    Sessions call request() instead of touching the calculator. Requests that
    are waiting together when the task wakes up share one calculation cycle,
    so concurrent subscribers see the same values for that cycle.
    """

    def __init__(self, calculator: IndexCalculator) -> None:
        self._calculator = calculator
        self._requests: asyncio.Queue[asyncio.Future[list[IndexResult]]] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._cycles = 0

    @property
    def calculator(self) -> IndexCalculator:
        return self._calculator

    @property
    def cycles(self) -> int:
        return self._cycles

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_loop(), name="calculation-engine")
            logger.info("Calculation engine started for %d indices", len(self._calculator.indices))

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        while not self._requests.empty():
            pending = self._requests.get_nowait()
            if not pending.done():
                pending.cancel()
        logger.info("Calculation engine stopped")

    async def request(self) -> list[IndexResult]:
        """Ask for a calculation cycle and wait for its results."""
        self.start()
        future: asyncio.Future[list[IndexResult]] = asyncio.get_running_loop().create_future()
        await self._requests.put(future)
        return await future

    async def _run_loop(self) -> None:
        while True:
            batch = [await self._requests.get()]
            while not self._requests.empty():
                batch.append(self._requests.get_nowait())

            try:
                results = self._calculator.calculate_indices()
            except Exception as e:
                logger.exception("Index calculation failed")
                for future in batch:
                    if not future.done():
                        future.set_exception(e)
                continue

            self._cycles += 1
            for future in batch:
                if not future.done():
                    future.set_result(results)
