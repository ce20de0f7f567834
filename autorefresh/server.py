"""aiohttp wiring and a static dev server with the reload script injected.

Usage:
    autorefresh serve ./site --port 8000
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path

from aiohttp import web

from .config import AutorefreshConfig
from .reloader import PageReloader, create

logger = logging.getLogger(__name__)

RELOADER_KEY = web.AppKey("autorefresh_reloader", PageReloader)


def inject_middleware(reloader: PageReloader):
    """Middleware that adds the reload script to ``text/html`` responses."""

    @web.middleware
    async def middleware(request: web.Request, handler) -> web.StreamResponse:
        response = await handler(request)
        if (
            isinstance(response, web.Response)
            and response.content_type == "text/html"
            and response.body is not None
            and not response.prepared
        ):
            response.text = reloader.inject(response.text)
        return response

    return middleware


def setup_autorefresh(
    app: web.Application, reloader: PageReloader, inject: bool = True,
) -> None:
    """Route the reload endpoint and close its sessions on app shutdown."""
    app[RELOADER_KEY] = reloader
    app.router.add_get(reloader.path, reloader.serve)
    app.on_shutdown.append(reloader.on_shutdown)
    if inject:
        app.middlewares.append(inject_middleware(reloader))
    logger.info(
        "Autorefresh enabled path=%s refresh_rate=%dms inject=%s",
        reloader.path, reloader.refresh_rate, inject,
    )


class DevServer:
    """Serves a directory over HTTP with pages reloading on server restart.

    Pair it with any restart tool: each restart drops the reload sockets
    and every open tab reloads once the new process is listening.
    """

    def __init__(self, config: AutorefreshConfig) -> None:
        self._config = config
        self._root = Path(config.root).resolve()
        self._started_at = time.time()
        self.reloader = create(
            path=config.path,
            refresh_rate=config.refresh_rate,
            keepalive_interval=config.keepalive_interval,
        )
        self._app = web.Application(middlewares=[self._request_logging_middleware])
        self._app.router.add_get("/health", self._handle_health)
        setup_autorefresh(self._app, self.reloader, inject=config.inject)
        self._app.router.add_get("/{tail:.*}", self._handle_file)
        logger.info(
            "DevServer init host=%s port=%s root=%s pid=%s",
            config.host, config.port, self._root, os.getpid(),
        )

    @property
    def app(self) -> web.Application:
        return self._app

    # ── Middleware ──

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            logger.info("HTTP %s %s req=%s status=%s", request.method, request.path_qs, req_id, exc.status)
            raise
        except Exception:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.exception("HTTP %s %s req=%s failed duration_ms=%.1f", request.method, request.path_qs, req_id, elapsed_ms)
            raise
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "HTTP %s %s req=%s status=%s duration_ms=%.1f",
            request.method, request.path_qs, req_id,
            getattr(response, "status", "?"), elapsed_ms,
        )
        return response

    # ── HTTP handlers ──

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "pid": os.getpid(),
            "uptime_seconds": round(max(0.0, time.time() - self._started_at), 3),
            "root": str(self._root),
            "reload_path": self.reloader.path,
        })

    async def _handle_file(self, request: web.Request) -> web.StreamResponse:
        target = (self._root / request.match_info["tail"]).resolve()
        if not target.is_relative_to(self._root):
            raise web.HTTPForbidden()
        if target.is_dir():
            target = target / "index.html"
        if not target.is_file():
            raise web.HTTPNotFound()
        if target.suffix.lower() in {".html", ".htm"}:
            try:
                html = target.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                logger.warning("Serving %s without autorefresh: not valid UTF-8", target)
                return web.FileResponse(target)
            # Read into a Response so the inject middleware can rewrite it.
            return web.Response(text=html, content_type="text/html")
        return web.FileResponse(target)

    # ── Lifecycle ──

    async def start(self) -> None:
        """Serve until cancelled."""
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self._config.host, self._config.port)
        await site.start()
        logger.info(
            "Dev server listening on http://%s:%d (root=%s)",
            self._config.host, self._config.port, self._root,
        )
        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("Server shutting down")
            raise
        finally:
            await runner.cleanup()
