"""
Tests for the run state machine and its transition table.
"""

from __future__ import annotations

import pytest
import structlog
from structlog.testing import capture_logs

from taskmaster_ai.exceptions import InvalidStateTransitionError
from taskmaster_ai.llm import OrchestrationState, RunStateMachine, VALID_TRANSITIONS, can_transition
from taskmaster_ai.llm.models import TERMINAL_STATES

S = OrchestrationState


def _machine(first_role: str = "main") -> RunStateMachine:
    return RunStateMachine(structlog.get_logger("test"), first_role=first_role)


def test_every_state_has_a_transition_entry() -> None:
    assert set(VALID_TRANSITIONS) == set(OrchestrationState)


@pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
def test_terminal_states_have_no_exits(terminal: OrchestrationState) -> None:
    assert all(not can_transition(terminal, target) for target in OrchestrationState)


@pytest.mark.parametrize(
    "from_state,to_state,allowed",
    [
        (S.PENDING, S.ATTEMPTING, True),
        (S.PENDING, S.PENDING, True),
        (S.PENDING, S.SUCCEEDED, False),
        (S.ATTEMPTING, S.ATTEMPTING, True),
        (S.ATTEMPTING, S.SUCCEEDED, True),
        (S.ATTEMPTING, S.PENDING, False),
        (S.ATTEMPTING, S.ALL_ROLES_EXHAUSTED, False),
        (S.ROLE_EXHAUSTED, S.PENDING, True),
        (S.ROLE_EXHAUSTED, S.ATTEMPTING, False),
        (S.ROLE_EXHAUSTED, S.ALL_ROLES_EXHAUSTED, True),
    ],
)
def test_transition_table(from_state, to_state, allowed) -> None:
    assert can_transition(from_state, to_state) is allowed


def test_new_machine_starts_pending_for_first_role() -> None:
    machine = _machine("research")

    assert machine.state is S.PENDING
    assert machine.role == "research"
    assert machine.attempt_number == 0
    assert not machine.is_terminal


def test_role_change_resets_attempt_number() -> None:
    machine = _machine()
    machine.transition(S.ATTEMPTING, attempt_number=1)
    machine.transition(S.ATTEMPTING, attempt_number=2)
    machine.transition(S.ROLE_EXHAUSTED)
    machine.transition(S.PENDING, role="fallback")

    assert machine.role == "fallback"
    assert machine.attempt_number == 0
    assert machine.history[-1] == (S.PENDING, "fallback", 0)


def test_invalid_transition_raises_and_keeps_state() -> None:
    machine = _machine()
    machine.transition(S.ATTEMPTING, attempt_number=1)
    machine.transition(S.SUCCEEDED)

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        machine.transition(S.ATTEMPTING, attempt_number=2)

    assert machine.state is S.SUCCEEDED
    assert machine.is_terminal
    assert "succeeded" in str(exc_info.value)


def test_transitions_are_logged() -> None:
    with capture_logs() as logs:
        machine = _machine()
        machine.transition(S.ATTEMPTING, attempt_number=1)

    (entry,) = [log for log in logs if log["event"] == "state_transition"]
    assert entry["from_state"] == "pending"
    assert entry["to_state"] == "attempting"
    assert entry["attempt"] == 1
