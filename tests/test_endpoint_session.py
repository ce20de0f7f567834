"""Endpoint keepalive step and liveness signal."""

from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from autorefresh.endpoint import EndpointSession, Liveness


class FakeSocket:
    def __init__(self) -> None:
        self.closed = False
        self.ping = AsyncMock()


@pytest.mark.asyncio
async def test_step_pings_and_continues_while_live():
    ws = FakeSocket()
    session = EndpointSession(ws, Liveness(), interval=0.01)
    assert await session.step() is True
    assert await session.step() is True
    assert ws.ping.await_count == 2


@pytest.mark.asyncio
async def test_step_stops_when_cancelled_before_probe():
    ws = FakeSocket()
    liveness = Liveness()
    liveness.cancel()
    session = EndpointSession(ws, liveness, interval=0.01)
    assert await session.step() is False
    ws.ping.assert_not_awaited()


@pytest.mark.asyncio
async def test_step_wakes_on_cancellation_during_pause():
    ws = FakeSocket()
    liveness = Liveness()
    session = EndpointSession(ws, liveness, interval=2.0)

    asyncio.get_running_loop().call_later(0.05, liveness.cancel)
    start = time.monotonic()
    assert await session.step() is False
    assert time.monotonic() - start < 1.0


@pytest.mark.asyncio
async def test_step_stops_when_probe_fails():
    ws = FakeSocket()
    ws.ping.side_effect = ConnectionResetError("Cannot write to closing transport")
    session = EndpointSession(ws, Liveness(), interval=0.01)
    assert await session.step() is False


@pytest.mark.asyncio
async def test_step_stops_when_socket_closed():
    ws = FakeSocket()
    ws.closed = True
    session = EndpointSession(ws, Liveness(), interval=0.01)
    assert await session.step() is False
    ws.ping.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancelling_parent_cancels_derived_children():
    root = Liveness()
    first, second = root.derive(), root.derive()
    first.cancel()
    assert not root.cancelled
    assert not second.cancelled

    root.cancel()
    assert second.cancelled
    assert root.derive().cancelled


@pytest.mark.asyncio
async def test_wait_times_out_when_live():
    assert await Liveness().wait(0.01) is False
