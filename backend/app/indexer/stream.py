"""Websocket broadcast of live index values."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from .calculator import CalculationEngine
from .models import utc_now

logger = logging.getLogger(__name__)

TICK_INTERVAL = 1.0
HEARTBEAT_INTERVAL = 30.0

CLOSE_GOING_AWAY = 1001
CLOSE_INTERNAL_ERROR = 1011


class SessionRegistry:
    """Tracks live sessions so shutdown can wait for their close frames."""

    def __init__(self) -> None:
        self._sessions: set[IndexSession] = set()
        self._empty = asyncio.Event()
        self._empty.set()

    def add(self, session: IndexSession) -> None:
        self._sessions.add(session)
        self._empty.clear()

    def discard(self, session: IndexSession) -> None:
        self._sessions.discard(session)
        if not self._sessions:
            self._empty.set()

    async def wait_closed(self, timeout: float) -> bool:
        """Wait until every session has ended. False if the timeout expired first."""
        try:
            await asyncio.wait_for(self._empty.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def __len__(self) -> int:
        return len(self._sessions)


class IndexSession:
    """One subscriber connection and its broadcast loop.

    After a welcome message the session waits on whichever comes first: a
    message from the subscriber (logged only), the tick (one calculation
    request, one text frame per result), the heartbeat timer, or shutdown
    (close frame). Sessions tick independently of each other; the engine
    merges requests that arrive together into one cycle, but there is no
    cross-session tick alignment.
    """

    def __init__(
        self,
        websocket: WebSocket,
        engine: CalculationEngine,
        shutdown: asyncio.Event,
        tick_interval: float = TICK_INTERVAL,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
    ) -> None:
        self._ws = websocket
        self._engine = engine
        self._shutdown = shutdown
        self._tick_interval = tick_interval
        self._heartbeat_interval = heartbeat_interval
        client = websocket.client
        self.peer = f"{client.host}:{client.port}" if client else "unknown"
        self.sent_results = 0

    async def run(self) -> None:
        await self._ws.accept()
        logger.info("Subscriber connected: %s", self.peer)

        receiver: asyncio.Task | None = None
        stopper = asyncio.ensure_future(self._shutdown.wait())
        try:
            await self._ws.send_text(f"Connected to index stream. Client: {self.peer}")

            loop = asyncio.get_running_loop()
            next_tick = loop.time() + self._tick_interval
            next_heartbeat = loop.time() + self._heartbeat_interval

            while True:
                if self._shutdown.is_set():
                    await self._close(CLOSE_GOING_AWAY, "server shutting down")
                    return

                if receiver is None:
                    receiver = asyncio.ensure_future(self._ws.receive())
                timeout = max(0.0, min(next_tick, next_heartbeat) - loop.time())
                done, _ = await asyncio.wait(
                    {receiver, stopper}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
                )

                if stopper in done:
                    continue

                if receiver in done:
                    message = receiver.result()
                    receiver = None
                    if message["type"] == "websocket.disconnect":
                        logger.info("Subscriber %s closed the connection", self.peer)
                        return
                    logger.info("Message from %s: %s", self.peer, message.get("text") or message.get("bytes"))

                now = loop.time()
                if now >= next_tick:
                    await self._send_indices()
                    next_tick += self._tick_interval
                    now = loop.time()
                    if next_tick <= now:
                        # a cycle overran a full interval; no back-to-back catch-up
                        next_tick = now + self._tick_interval
                if now >= next_heartbeat:
                    await self._ws.send_text(f"HEARTBEAT: {utc_now().isoformat()}")
                    next_heartbeat = now + self._heartbeat_interval
        except (WebSocketDisconnect, ConnectionError) as e:
            logger.info("Subscriber %s dropped: %s", self.peer, e or type(e).__name__)
        except Exception as e:
            if self._disconnected:
                # Starlette raises RuntimeError for I/O on a socket the peer already closed
                logger.info("Subscriber %s dropped: %s", self.peer, e)
            else:
                logger.exception("Session with %s failed", self.peer)
                await self._close(CLOSE_INTERNAL_ERROR, "internal error")
        finally:
            for task in (receiver, stopper):
                if task is not None and not task.done():
                    task.cancel()
            logger.info("Subscriber disconnected: %s", self.peer)

    async def _send_indices(self) -> None:
        for result in await self._engine.request():
            logger.debug("Sending %s=%s to %s", result.name, result.value, self.peer)
            await self._ws.send_text(result.to_message())
            self.sent_results += 1

    @property
    def _disconnected(self) -> bool:
        return WebSocketState.DISCONNECTED in (self._ws.client_state, self._ws.application_state)

    async def _close(self, code: int, reason: str) -> None:
        if self._disconnected:
            return
        try:
            await self._ws.close(code=code, reason=reason)
        except (WebSocketDisconnect, ConnectionError, RuntimeError) as e:
            logger.debug("Close handshake with %s failed: %s", self.peer, e)


def create_stream_router(
    engine: CalculationEngine,
    shutdown: asyncio.Event,
    registry: SessionRegistry,
    tick_interval: float = TICK_INTERVAL,
    heartbeat_interval: float = HEARTBEAT_INTERVAL,
) -> APIRouter:
    """Create the websocket router with references to the engine and shutdown signal.

    This factory pattern lets us inject collaborators without globals.
    """
    router = APIRouter(tags=["streaming"])

    @router.websocket("/")
    async def stream_indices(websocket: WebSocket) -> None:
        """Live index feed. Text frames: 'INDEX: <name> | TIMESTAMP: <rfc3339> | VALUE: <v>'."""
        session = IndexSession(
            websocket,
            engine,
            shutdown,
            tick_interval=tick_interval,
            heartbeat_interval=heartbeat_interval,
        )
        registry.add(session)
        try:
            await session.run()
        finally:
            registry.discard(session)

    return router


def create_app(
    engine: CalculationEngine,
    shutdown: asyncio.Event,
    registry: SessionRegistry | None = None,
    tick_interval: float = TICK_INTERVAL,
    heartbeat_interval: float = HEARTBEAT_INTERVAL,
) -> FastAPI:
    """ASGI application serving the index stream. Its lifespan owns the engine task."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine.start()
        yield
        await engine.stop()

    app = FastAPI(title="Index Collector", lifespan=lifespan)
    app.state.registry = registry or SessionRegistry()
    app.include_router(
        create_stream_router(
            engine,
            shutdown,
            app.state.registry,
            tick_interval=tick_interval,
            heartbeat_interval=heartbeat_interval,
        )
    )
    return app
