"""Reconnecting subscriber for the index stream."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import websockets
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from .backoff import backoff_delay
from .models import IndexResult, parse_index_message

logger = logging.getLogger(__name__)

DEFAULT_SERVER = "ws://127.0.0.1:9000/"
RECONNECT_DELAY = 5.0
MAX_RECONNECT_DELAY = 60.0

UpdateCallback = Callable[[IndexResult], None]


class IndexSubscriber:
    """Consumes the broadcast feed and keeps the latest value of every index.

    Connection errors are retried with exponential backoff capped at 60s. A
    clean close from the server is followed by a fixed reconnect delay, or
    ends run() when reconnect is disabled. Setting the stop event sends a
    close handshake and ends run().
    """

    def __init__(
        self,
        url: str = DEFAULT_SERVER,
        reconnect: bool = True,
        reconnect_delay: float = RECONNECT_DELAY,
        on_update: UpdateCallback | None = None,
    ) -> None:
        self.url = url
        self.reconnect = reconnect
        self.reconnect_delay = reconnect_delay
        self._on_update = on_update
        self.latest: dict[str, IndexResult] = {}
        self.failed_attempts = 0

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Subscribe until stopped. Raises the connection error when reconnect is disabled."""
        stop = stop or asyncio.Event()
        logger.info("Connecting to index stream at %s", self.url)

        while not stop.is_set():
            try:
                await self._subscribe_once(stop)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                self.failed_attempts += 1
                if not self.reconnect:
                    logger.error("Connection error and reconnect disabled: %s", e)
                    raise
                delay = backoff_delay(self.failed_attempts, self.reconnect_delay, MAX_RECONNECT_DELAY)
                logger.warning(
                    "Connection error (attempt %d), reconnecting in %gs: %s",
                    self.failed_attempts,
                    delay,
                    e,
                )
                await self._pause(stop, delay)
                continue

            if stop.is_set():
                break
            if not self.reconnect:
                logger.info("Connection closed and reconnect disabled")
                break
            logger.info("Connection closed, reconnecting in %gs", self.reconnect_delay)
            await self._pause(stop, self.reconnect_delay)

        logger.info("Subscriber stopped")

    def handle_message(self, text: str) -> IndexResult | None:
        """Record one text frame. Returns the decoded update, if it was one."""
        if text.startswith("HEARTBEAT:"):
            logger.debug("Heartbeat: %s", text)
            return None
        try:
            update = parse_index_message(text)
        except ValueError:
            logger.warning("Received malformed index message: %s", text)
            return None
        if update is None:
            logger.info("Server message: %s", text)
            return None

        self.latest[update.name] = update
        logger.info("Index update %s = %s (%s)", update.name, update.value, update.timestamp.isoformat())
        if self._on_update is not None:
            self._on_update(update)
        return update

    # --- Internals ---

    async def _subscribe_once(self, stop: asyncio.Event) -> None:
        async with websockets.connect(self.url) as ws:
            logger.info("Connected to %s", self.url)
            self.failed_attempts = 0
            stopper = asyncio.ensure_future(stop.wait())
            try:
                while True:
                    receiver = asyncio.ensure_future(ws.recv())
                    done, _ = await asyncio.wait(
                        {receiver, stopper}, return_when=asyncio.FIRST_COMPLETED
                    )
                    if receiver not in done:
                        receiver.cancel()
                        logger.info("Stop requested, closing connection")
                        await ws.close()
                        return
                    try:
                        message = receiver.result()
                    except ConnectionClosedOK as e:
                        logger.info("Server closed the connection (code %s)", e.rcvd.code if e.rcvd else None)
                        return
                    if isinstance(message, bytes):
                        logger.debug("Ignoring %d byte binary frame", len(message))
                        continue
                    self.handle_message(message)
            finally:
                stopper.cancel()

    @staticmethod
    async def _pause(stop: asyncio.Event, delay: float) -> None:
        try:
            await asyncio.wait_for(stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
