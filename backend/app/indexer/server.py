"""Listener socket and ASGI server for the broadcast endpoint."""

from __future__ import annotations

import asyncio
import errno
import logging
import socket

import uvicorn

from .errors import AddressInUseError, ListenerBindError

logger = logging.getLogger(__name__)


def bind_listener(host: str, port: int, backlog: int = 128) -> socket.socket:
    """Bind and listen on host:port.

    Raises AddressInUseError when another process holds the address and
    ListenerBindError for every other failure (bad host, permissions, ...).
    """
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE)
    except socket.gaierror as e:
        raise ListenerBindError(host, port, f"cannot resolve host: {e}") from e

    family, kind, proto, _, address = infos[0]
    sock = socket.socket(family, kind, proto)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(address)
        sock.listen(backlog)
    except OSError as e:
        sock.close()
        if e.errno == errno.EADDRINUSE:
            raise AddressInUseError(host, port, "address already in use") from e
        raise ListenerBindError(host, port, e.strerror or str(e)) from e

    sock.setblocking(False)
    logger.info("Listening on %s:%d", host, sock.getsockname()[1])
    return sock


class IndexServer(uvicorn.Server):
    """uvicorn server whose exit signals trip the shared shutdown event.

    The first SIGINT/SIGTERM only sets the event so sessions can send their
    close frames; the collector then asks the server to exit. A second
    signal forces an immediate exit.
    """

    def __init__(self, config: uvicorn.Config, shutdown: asyncio.Event) -> None:
        super().__init__(config)
        self._shutdown = shutdown
        self._loop = asyncio.get_running_loop()

    def handle_exit(self, sig, frame) -> None:
        if self._shutdown.is_set():
            self.should_exit = True
            self.force_exit = True
            return
        logger.info("Received signal %s, shutting down", sig)
        self._loop.call_soon_threadsafe(self._shutdown.set)

    async def serve_socket(self, sock: socket.socket) -> None:
        await self.serve(sockets=[sock])


def create_server(app, shutdown: asyncio.Event, heartbeat_interval: float) -> IndexServer:
    """Build the server. Must be called from inside the running event loop."""
    config = uvicorn.Config(
        app,
        log_level="warning",
        access_log=False,
        ws_ping_interval=heartbeat_interval,
        ws_ping_timeout=heartbeat_interval,
        lifespan="on",
    )
    return IndexServer(config, shutdown)
