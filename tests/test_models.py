"""Tests for session keys, terminal markers and lifecycle transitions."""
from __future__ import annotations

import pytest

from agentrelay.engine.lifecycle import transition, validate_transition
from agentrelay.engine.models import (
    SessionHandle,
    SessionKey,
    SessionState,
    TerminalMarker,
)


def test_session_key_renders_composite_id():
    assert str(SessionKey("claude", "ws:with:colons")) == "claude:ws:with:colons"


def test_keys_are_hashable_value_types():
    assert {SessionKey("a", "b"): 1}[SessionKey("a", "b")] == 1


@pytest.mark.parametrize(
    "marker,rendered",
    [
        (TerminalMarker.complete(0), "[COMPLETE] exit code 0"),
        (TerminalMarker.complete(-1), "[COMPLETE] exit code -1"),
        (TerminalMarker.failed("boom"), "[ERROR] boom"),
        (TerminalMarker.failed(""), "[ERROR]"),
        (TerminalMarker.cancelled(), "[CANCELLED]"),
    ],
)
def test_marker_rendering(marker, rendered):
    assert marker.render() == rendered


def test_valid_lifecycle_path():
    handle = SessionHandle(key=SessionKey("claude", "ws1"), transport=None)
    for state in (SessionState.STREAMING, SessionState.CANCELLING, SessionState.TERMINATED):
        transition(handle, state)
    assert handle.state == SessionState.TERMINATED


def test_invalid_transition_raises():
    with pytest.raises(ValueError, match="Invalid state transition: terminated -> streaming"):
        validate_transition(SessionState.TERMINATED, SessionState.STREAMING)
    with pytest.raises(ValueError):
        validate_transition(SessionState.STARTING, SessionState.COMPLETING)
