"""Reload agent states, events and effects.

Shared by the Python agent driver and mirrored by the browser script,
so both sides walk the same transition table (see agent.py).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AgentPhase(str, Enum):
    """Agent connection phases. See agent.py for transition rules."""
    CONNECTING = "connecting"
    OPEN = "open"
    RETRYING = "retrying"
    RELOADING = "reloading"


class AgentEvent(str, Enum):
    """Connection events delivered to the agent."""
    OPENED = "opened"
    ERROR = "error"
    CLOSED = "closed"
    RETRY_ELAPSED = "retry_elapsed"


class AgentEffect(str, Enum):
    """Side effect the driver performs after a transition."""
    NONE = "none"
    CONNECT = "connect"
    SCHEDULE_RETRY = "schedule_retry"
    RELOAD = "reload"


@dataclass(frozen=True)
class AgentState:
    """Snapshot of one agent.

    ``reload_on_next_connect`` becomes true the first time a connection
    opens and is never cleared by a disconnect.
    """
    phase: AgentPhase = AgentPhase.CONNECTING
    reload_on_next_connect: bool = False
