"""Reload agent state machine — pure transition table."""

from __future__ import annotations

import pytest

from autorefresh.agent import TRANSITIONS, initial_state, transition
from autorefresh.models import AgentEffect, AgentEvent, AgentPhase, AgentState


def _run(state: AgentState, *events: AgentEvent) -> tuple[AgentState, list[AgentEffect]]:
    effects = []
    for event in events:
        state, effect = transition(state, event)
        effects.append(effect)
    return state, effects


def test_first_open_sets_intent_without_reload():
    state, effect = transition(initial_state(), AgentEvent.OPENED)
    assert state.phase is AgentPhase.OPEN
    assert state.reload_on_next_connect is True
    assert effect is AgentEffect.NONE


def test_reconnect_after_drop_reloads():
    state, effects = _run(
        initial_state(),
        AgentEvent.OPENED,
        AgentEvent.CLOSED,
        AgentEvent.RETRY_ELAPSED,
        AgentEvent.OPENED,
    )
    assert effects == [
        AgentEffect.NONE,
        AgentEffect.SCHEDULE_RETRY,
        AgentEffect.CONNECT,
        AgentEffect.RELOAD,
    ]
    assert state.phase is AgentPhase.RELOADING


def test_connect_with_reload_flag_reloads_on_open():
    state, effect = transition(initial_state(reload=True), AgentEvent.OPENED)
    assert effect is AgentEffect.RELOAD
    assert state.phase is AgentPhase.RELOADING


def test_repeated_failures_never_reload():
    state = initial_state()
    for _ in range(50):
        state, effects = _run(state, AgentEvent.ERROR, AgentEvent.CLOSED, AgentEvent.RETRY_ELAPSED)
        assert effects == [AgentEffect.SCHEDULE_RETRY, AgentEffect.NONE, AgentEffect.CONNECT]
        assert state.reload_on_next_connect is False
    assert state.phase is AgentPhase.CONNECTING


def test_intent_survives_many_failed_reconnects():
    state, _ = _run(initial_state(), AgentEvent.OPENED, AgentEvent.CLOSED)
    for _ in range(10):
        state, _ = _run(state, AgentEvent.RETRY_ELAPSED, AgentEvent.ERROR)
        assert state.reload_on_next_connect is True
    state, _ = _run(state, AgentEvent.RETRY_ELAPSED)
    _, effect = transition(state, AgentEvent.OPENED)
    assert effect is AgentEffect.RELOAD


def test_error_then_close_schedules_a_single_retry():
    state, effects = _run(initial_state(), AgentEvent.OPENED, AgentEvent.ERROR, AgentEvent.CLOSED)
    assert effects.count(AgentEffect.SCHEDULE_RETRY) == 1
    assert state.phase is AgentPhase.RETRYING


def test_events_after_reload_are_absorbed():
    state, _ = transition(initial_state(reload=True), AgentEvent.OPENED)
    state, effects = _run(state, AgentEvent.ERROR, AgentEvent.CLOSED)
    assert effects == [AgentEffect.NONE, AgentEffect.NONE]
    assert state.phase is AgentPhase.RELOADING


@pytest.mark.parametrize(
    "phase,event",
    [
        (AgentPhase.OPEN, AgentEvent.OPENED),
        (AgentPhase.OPEN, AgentEvent.RETRY_ELAPSED),
        (AgentPhase.CONNECTING, AgentEvent.RETRY_ELAPSED),
        (AgentPhase.RETRYING, AgentEvent.OPENED),
        (AgentPhase.RELOADING, AgentEvent.OPENED),
    ],
)
def test_undefined_transitions_raise(phase, event):
    assert (phase, event) not in TRANSITIONS
    with pytest.raises(ValueError, match="Invalid agent transition"):
        transition(AgentState(phase=phase), event)


def test_transition_does_not_mutate_input():
    state = initial_state()
    transition(state, AgentEvent.OPENED)
    assert state == AgentState()
