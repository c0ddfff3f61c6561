"""Adapters bridging session events to presentation consumers."""
from .event_bus import EventBus
from .events import (
    SessionEvent,
    StreamComplete,
    StreamError,
    StreamOutput,
    event_to_dict,
)

__all__ = [
    "EventBus",
    "SessionEvent",
    "StreamComplete",
    "StreamError",
    "StreamOutput",
    "event_to_dict",
]
