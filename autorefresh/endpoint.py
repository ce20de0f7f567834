"""Server side of the reload channel.

An endpoint session holds one websocket open, pinging it every
keepalive interval, until its liveness is cancelled or the socket dies.
The browser treats the resulting disconnect as the restart signal.
"""
from __future__ import annotations

import asyncio
import logging
import weakref

from aiohttp import WSCloseCode, WSMsgType, web

from .config import KEEPALIVE_INTERVAL

logger = logging.getLogger(__name__)

CLOSE_MESSAGE = b"server closing websocket"


class Liveness:
    """Cancellable liveness signal.

    Children derived from a liveness are cancelled together with it, the
    way a request context is cancelled with its server.
    """

    def __init__(self, parent: Liveness | None = None) -> None:
        self._event = asyncio.Event()
        self._children: weakref.WeakSet[Liveness] = weakref.WeakSet()
        if parent is not None:
            if parent.cancelled:
                self._event.set()
            else:
                parent._children.add(self)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def derive(self) -> Liveness:
        return Liveness(parent=self)

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        for child in list(self._children):
            child.cancel()

    async def wait(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds. Returns True if cancelled."""
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


class EndpointSession:
    """One accepted reload connection."""

    def __init__(
        self,
        ws: web.WebSocketResponse,
        liveness: Liveness,
        interval: float = KEEPALIVE_INTERVAL,
    ) -> None:
        self._ws = ws
        self._liveness = liveness
        self._interval = interval

    async def step(self) -> bool:
        """Probe, pause, check cancellation. False once the session must end."""
        if self._liveness.cancelled or self._ws.closed:
            return False
        try:
            await self._ws.ping()
        except (ConnectionResetError, RuntimeError) as exc:
            logger.debug("Keepalive ping failed: %s", exc)
            return False
        return not await self._liveness.wait(self._interval)

    async def run(self) -> None:
        reader = asyncio.create_task(self._drain())
        try:
            while await self.step():
                pass
        finally:
            await self._ws.close(code=WSCloseCode.GOING_AWAY, message=CLOSE_MESSAGE)
            if not reader.done():
                reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)

    async def _drain(self) -> None:
        # No application messages are expected; reading only detects close.
        try:
            async for msg in self._ws:
                if msg.type == WSMsgType.ERROR:
                    logger.debug("Reload socket error: %s", self._ws.exception())
                    break
        finally:
            self._liveness.cancel()


async def serve_endpoint(
    request: web.Request,
    liveness: Liveness,
    interval: float = KEEPALIVE_INTERVAL,
) -> web.StreamResponse:
    """Accept a reload websocket and hold it open until *liveness* ends."""
    ws = web.WebSocketResponse(heartbeat=None, autoping=True)
    if not ws.can_prepare(request).ok:
        logger.warning("Reload endpoint %s: request is not a websocket upgrade", request.path)
        return web.Response(status=500, text="could not open websocket")
    try:
        await ws.prepare(request)
    except (web.HTTPException, ConnectionResetError) as exc:
        logger.warning("Reload endpoint %s: accept failed: %s", request.path, exc)
        return web.Response(status=500, text="could not open websocket")

    logger.info("Reload session opened from=%s", request.remote)
    session = EndpointSession(ws, liveness.derive(), interval)
    try:
        await session.run()
    finally:
        logger.info("Reload session closed from=%s code=%s", request.remote, ws.close_code)
    return ws
