"""Bounded multi-producer / single-consumer channel for feed observations."""

from __future__ import annotations

import asyncio

from .errors import ChannelClosedError
from .models import FeedObservation

DEFAULT_CAPACITY = 100


class FeedChannel:
    """Carries observations from ingestion workers to the calculator.

    Producers block in send() while the channel is full; nothing is dropped.
    The consumer drains without blocking. Once closed, sends raise
    ChannelClosedError, including sends that were already waiting for room.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._queue: asyncio.Queue[FeedObservation] = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()

    async def send(self, observation: FeedObservation) -> None:
        if self._closed.is_set():
            raise ChannelClosedError("feed channel is closed")
        try:
            self._queue.put_nowait(observation)
            return
        except asyncio.QueueFull:
            pass

        put = asyncio.ensure_future(self._queue.put(observation))
        closed = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({put, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closed.cancel()
            if not put.done():
                put.cancel()
        if put.cancelled() or not put.done():
            raise ChannelClosedError("feed channel closed while waiting for room")

    def drain(self) -> list[FeedObservation]:
        """Take every queued observation, oldest first, without waiting."""
        drained: list[FeedObservation] = []
        while True:
            try:
                drained.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return drained

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    def __len__(self) -> int:
        return self._queue.qsize()
