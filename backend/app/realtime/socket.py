"""
Socket.IO transport for the delivery channel.

Clients connect to ``/socket.io`` with ``auth={"token": <jwt>}``. A valid
token subscribes the socket to its user's channel; anything else is
refused at handshake time.

Engine code runs in FastAPI's worker threads, so pushes are handed to the
server's event loop with ``run_coroutine_threadsafe`` and never awaited.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Future
from typing import Any, Optional

import socketio
from socketio import exceptions as sio_exceptions
from fastapi.encoders import jsonable_encoder

from app.core.config import settings
from app.core.errors import AuthenticationFailed, DeliveryFailure
from app.realtime.channel import DeliveryChannel

logger = logging.getLogger(__name__)


class SocketIOConnection:
    """Registry entry for one Socket.IO session."""

    def __init__(self, sio: socketio.AsyncServer, sid: str, loop: asyncio.AbstractEventLoop):
        self.sid = sid
        self._sio = sio
        self._loop = loop
        self.accepted = False

    def send(self, event: str, payload: Any) -> None:
        self._schedule(self._sio.emit(event, jsonable_encoder(payload), to=self.sid))

    def close(self) -> None:
        # a refused handshake is dropped by python-socketio itself
        if not self.accepted:
            return
        self._schedule(self._sio.disconnect(self.sid))

    def _schedule(self, coro) -> None:
        try:
            running: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        try:
            if running is self._loop:
                self._loop.create_task(coro).add_done_callback(self._report)
            else:
                asyncio.run_coroutine_threadsafe(coro, self._loop).add_done_callback(self._report)
        except RuntimeError as exc:
            # loop already closed (shutdown in progress)
            coro.close()
            raise DeliveryFailure(f"Socket {self.sid} is not reachable") from exc

    def _report(self, fut: "asyncio.Future | Future") -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.warning("Socket.IO emit to %s failed: %s", self.sid, exc)


def build_socket_server(channel: DeliveryChannel) -> socketio.AsyncServer:
    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=settings.cors_origins,
    )

    @sio.event
    async def connect(sid, environ, auth=None):
        token = auth.get("token") if isinstance(auth, dict) else None
        conn = SocketIOConnection(sio, sid, asyncio.get_running_loop())
        try:
            channel.connect(conn, token)
        except AuthenticationFailed as exc:
            raise sio_exceptions.ConnectionRefusedError(exc.message)
        conn.accepted = True

    @sio.event
    async def disconnect(sid, *args):
        channel.disconnect(sid)

    return sio


def mount_socket_app(app, channel: DeliveryChannel) -> socketio.ASGIApp:
    """Wrap the FastAPI app so ``/socket.io`` is served by Socket.IO and everything else by FastAPI."""
    sio = build_socket_server(channel)
    return socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=settings.socketio_path)
