"""Reload agent state machine.

Defines the single transition table used to decide when a page reload
fires, plus an asyncio driver that runs it against a live endpoint.

State Diagram:

    CONNECTING ──opened──> OPEN            (first connect: remember intent)
    CONNECTING ──opened──> RELOADING       (reconnect after a prior open)
    CONNECTING ──error/closed──> RETRYING
    OPEN       ──error/closed──> RETRYING
    RETRYING   ──retry_elapsed──> CONNECTING
    RETRYING   ──error/closed──> RETRYING  (absorbed, one retry per drop)
    RELOADING  ──error/closed──> RELOADING (page is being torn down)
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

import aiohttp

from .config import DEFAULT_REFRESH_RATE, validate_refresh_rate
from .models import AgentEffect, AgentEvent, AgentPhase, AgentState

logger = logging.getLogger(__name__)

Transition = tuple[AgentState, AgentEffect]

# Returns an open websocket-like object (async iterable, with close()).
Connector = Callable[[], Awaitable[Any]]
ReloadCallback = Callable[[], Awaitable[None]]


def initial_state(reload: bool = False) -> AgentState:
    """State for a fresh ``connect(reload)`` call."""
    return AgentState(phase=AgentPhase.CONNECTING, reload_on_next_connect=reload)


def _on_opened(state: AgentState) -> Transition:
    if state.reload_on_next_connect:
        return replace(state, phase=AgentPhase.RELOADING), AgentEffect.RELOAD
    return AgentState(AgentPhase.OPEN, reload_on_next_connect=True), AgentEffect.NONE


def _on_dropped(state: AgentState) -> Transition:
    return replace(state, phase=AgentPhase.RETRYING), AgentEffect.SCHEDULE_RETRY


def _on_retry_elapsed(state: AgentState) -> Transition:
    return replace(state, phase=AgentPhase.CONNECTING), AgentEffect.CONNECT


def _absorb(state: AgentState) -> Transition:
    return state, AgentEffect.NONE


TRANSITIONS: dict[tuple[AgentPhase, AgentEvent], Callable[[AgentState], Transition]] = {
    (AgentPhase.CONNECTING, AgentEvent.OPENED): _on_opened,
    (AgentPhase.CONNECTING, AgentEvent.ERROR): _on_dropped,
    (AgentPhase.CONNECTING, AgentEvent.CLOSED): _on_dropped,
    (AgentPhase.OPEN, AgentEvent.ERROR): _on_dropped,
    (AgentPhase.OPEN, AgentEvent.CLOSED): _on_dropped,
    (AgentPhase.RETRYING, AgentEvent.ERROR): _absorb,
    (AgentPhase.RETRYING, AgentEvent.CLOSED): _absorb,
    (AgentPhase.RETRYING, AgentEvent.RETRY_ELAPSED): _on_retry_elapsed,
    (AgentPhase.RELOADING, AgentEvent.ERROR): _absorb,
    (AgentPhase.RELOADING, AgentEvent.CLOSED): _absorb,
}


def transition(state: AgentState, event: AgentEvent) -> Transition:
    """Apply *event* to *state*. Raises ValueError if the pair is undefined."""
    handler = TRANSITIONS.get((state.phase, event))
    if handler is None:
        allowed = sorted(e.value for (p, e) in TRANSITIONS if p is state.phase)
        raise ValueError(
            f"Invalid agent transition: {event.value} in {state.phase.value}. "
            f"Allowed in {state.phase.value}: {', '.join(allowed) or 'none'}"
        )
    return handler(state)


class ReloadAgent:
    """Headless rendition of the browser reload agent.

    Connects to a reload endpoint and keeps reconnecting every
    ``refresh_rate`` milliseconds; ``run()`` returns once a reconnect
    succeeds after an earlier connection, i.e. once the server restarted.
    """

    def __init__(
        self,
        url: str,
        refresh_rate: int = DEFAULT_REFRESH_RATE,
        *,
        on_reload: ReloadCallback | None = None,
        connect: Connector | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        validate_refresh_rate(refresh_rate)
        self.url = url
        self.refresh_rate = refresh_rate
        self.state = initial_state()
        self._on_reload = on_reload
        self._connect = connect
        self._sleep = sleep
        self._session: aiohttp.ClientSession | None = None

    async def run(self, reload: bool = False) -> None:
        """Drive the state machine until the reload effect fires."""
        self.state = initial_state(reload)
        owns_session = self._connect is None
        if owns_session:
            self._session = aiohttp.ClientSession()
        try:
            effect = AgentEffect.CONNECT
            while effect is not AgentEffect.RELOAD:
                if effect is AgentEffect.CONNECT:
                    effect = await self._connect_once()
                elif effect is AgentEffect.SCHEDULE_RETRY:
                    await self._sleep(self.refresh_rate / 1000)
                    effect = self._dispatch(AgentEvent.RETRY_ELAPSED)
                else:
                    raise RuntimeError(f"Agent stalled in {self.state.phase.value}")
        finally:
            if owns_session and self._session is not None:
                await self._session.close()
                self._session = None

        logger.info("Reload endpoint %s is back after a restart", self.url)
        if self._on_reload is not None:
            await self._on_reload()

    def _dispatch(self, event: AgentEvent) -> AgentEffect:
        previous = self.state.phase
        self.state, effect = transition(self.state, event)
        logger.debug(
            "Agent %s: %s -> %s effect=%s",
            event.value, previous.value, self.state.phase.value, effect.value,
        )
        return effect

    async def _open(self) -> Any:
        if self._connect is not None:
            return await self._connect()
        assert self._session is not None
        return await self._session.ws_connect(self.url)

    async def _connect_once(self) -> AgentEffect:
        try:
            ws = await self._open()
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            logger.debug("Connect to %s failed: %s", self.url, exc)
            return self._dispatch(AgentEvent.ERROR)

        try:
            effect = self._dispatch(AgentEvent.OPENED)
            if effect is AgentEffect.RELOAD:
                return effect
            logger.info("Connected to reload endpoint %s", self.url)
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.ERROR:
                    break
        finally:
            await ws.close()
        logger.info("Reload endpoint %s dropped, retrying every %dms", self.url, self.refresh_rate)
        return self._dispatch(AgentEvent.CLOSED)
