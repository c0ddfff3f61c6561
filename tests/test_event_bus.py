"""Tests for the EventBus sink and event serialization."""
from __future__ import annotations

import pytest

from agentrelay.adapters.event_bus import EventBus
from agentrelay.adapters.events import (
    StreamComplete,
    StreamError,
    StreamOutput,
    event_to_dict,
)
from agentrelay.engine.events import EventPublisher, SessionEventSink
from agentrelay.engine.models import SessionKey

KEY = SessionKey("claude", "ws1")


def test_event_bus_is_a_session_sink():
    assert isinstance(EventBus(), SessionEventSink)


@pytest.mark.asyncio
async def test_sink_calls_become_typed_events():
    bus = EventBus()
    await bus.on_output(KEY, "hello")
    await bus.on_error(KEY, "warn\n")
    await bus.on_complete(KEY, 0)
    bus.close()

    events = [e async for e in bus.consume()]
    assert events == [
        StreamOutput(provider_id="claude", workspace_id="ws1", text="hello"),
        StreamError(provider_id="claude", workspace_id="ws1", text="warn\n"),
        StreamComplete(provider_id="claude", workspace_id="ws1", exit_code=0),
    ]
    assert events[0].session_key == "claude:ws1"


@pytest.mark.asyncio
async def test_closed_bus_drops_new_events():
    bus = EventBus()
    bus.close()
    await bus.on_output(KEY, "ignored")
    assert bus.pending == 0
    assert [e async for e in bus.consume()] == []


def test_event_to_dict():
    event = StreamComplete(provider_id="codex", workspace_id="ws2", exit_code=-1)
    assert event_to_dict(event) == {
        "event": "agent:stream-complete",
        "provider_id": "codex",
        "workspace_id": "ws2",
        "exit_code": -1,
    }


@pytest.mark.asyncio
async def test_publisher_without_sink_is_noop():
    publisher = EventPublisher()
    await publisher.output(KEY, "nobody listening")
    await publisher.complete(KEY, 0)
    assert publisher.sink is None
