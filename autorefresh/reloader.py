"""Construction API: bind the reload script to an endpoint path.

Usage:
    reloader = create(path="/_autorefresh", refresh_rate=500)
    app.router.add_get(reloader.path, reloader.serve)
    html = reloader.inject(page_html)
"""
from __future__ import annotations

import logging

from aiohttp import web
from jinja2 import Environment, Template
from markupsafe import Markup

from .config import DEFAULT_PATH, DEFAULT_REFRESH_RATE, KEEPALIVE_INTERVAL, validate_refresh_rate
from .endpoint import Liveness, serve_endpoint
from .errors import InvalidParametersError
from .template import compile_script, inject_fragment

logger = logging.getLogger(__name__)


class PageReloader:
    """Compiled reload fragment plus the endpoint handler it talks to."""

    def __init__(
        self,
        template: Template,
        path: str,
        refresh_rate: int,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
    ) -> None:
        self.template = template
        self.path = path
        self.refresh_rate = refresh_rate
        self.keepalive_interval = keepalive_interval
        # Root of every session's liveness; cancelled on shutdown.
        self._liveness = Liveness()

    def render(self) -> Markup:
        """The ``<script>`` fragment, safe to drop into any page template."""
        return Markup(self.template.render())

    def inject(self, html: str) -> str:
        return inject_fragment(html, str(self.render()))

    async def serve(self, request: web.Request) -> web.StreamResponse:
        """aiohttp handler for the reload websocket at ``self.path``."""
        return await serve_endpoint(request, self._liveness, self.keepalive_interval)

    def shutdown(self) -> None:
        """End every open reload session with a going-away close."""
        if not self._liveness.cancelled:
            logger.info("Closing reload sessions on %s", self.path)
        self._liveness.cancel()

    async def on_shutdown(self, app: web.Application) -> None:
        self.shutdown()


def create(
    environment: Environment | None = None,
    path: str = DEFAULT_PATH,
    refresh_rate: int = DEFAULT_REFRESH_RATE,
    keepalive_interval: float = KEEPALIVE_INTERVAL,
) -> PageReloader:
    """Validate parameters and compile the reload script.

    Raises InvalidParametersError for a refresh rate under 100ms, and
    TemplateParsingError if the script does not compile in *environment*.
    """
    validate_refresh_rate(refresh_rate)
    if not isinstance(path, str) or not path:
        raise InvalidParametersError("path must be a non-empty string")
    if isinstance(keepalive_interval, bool) or not isinstance(keepalive_interval, (int, float)):
        raise InvalidParametersError(f"keepalive_interval must be a number, got {keepalive_interval!r}")
    if keepalive_interval <= 0:
        raise InvalidParametersError("keepalive_interval must be positive")

    # Without a caller environment, use a private blank one.
    if environment is None:
        environment = Environment(autoescape=True)
    template = compile_script(environment, path, refresh_rate)
    logger.debug("Compiled reload script path=%s refresh_rate=%dms", path, refresh_rate)
    return PageReloader(template, path, refresh_rate, keepalive_interval)
