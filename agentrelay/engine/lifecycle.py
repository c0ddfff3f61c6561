"""Session lifecycle state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    IDLE ──> STARTING ──> STREAMING ──┬──> COMPLETING ──┐
                │                     │                 │
                │                     ├──> FAILING ─────┼──> TERMINATED
                │                     │                 │
                │                     └──> CANCELLING ──┘
                │
                └──> IDLE  (launch failed, nothing registered)
"""
from __future__ import annotations

from .models import SessionHandle, SessionState

VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {
        SessionState.STARTING,
    },
    SessionState.STARTING: {
        SessionState.STREAMING,
        SessionState.IDLE,
    },
    SessionState.STREAMING: {
        SessionState.COMPLETING,
        SessionState.FAILING,
        SessionState.CANCELLING,
    },
    SessionState.COMPLETING: {
        SessionState.TERMINATED,
    },
    SessionState.FAILING: {
        SessionState.TERMINATED,
    },
    SessionState.CANCELLING: {
        SessionState.TERMINATED,
    },
    SessionState.TERMINATED: set(),
}


def validate_transition(current: SessionState, target: SessionState) -> None:
    """Validate a state transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(s.value for s in allowed) or "none (terminal)"
        raise ValueError(
            f"Invalid state transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )


def transition(handle: SessionHandle, target: SessionState) -> None:
    """Move ``handle`` to ``target`` after validating the transition."""
    validate_transition(handle.state, target)
    handle.state = target
