"""Event types forwarded to a presentation layer.

Each event corresponds to one SessionEventSink call, parsed into a
typed dataclass for safe consumption by the CLI (or any other surface).
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class SessionEvent:
    """Base session event, keyed by the composite ``provider:workspace`` id."""
    event_type: str = ""
    provider_id: str = ""
    workspace_id: str = ""

    @property
    def session_key(self) -> str:
        return f"{self.provider_id}:{self.workspace_id}"


@dataclass
class StreamOutput(SessionEvent):
    event_type: str = "agent:stream-output"
    text: str = ""


@dataclass
class StreamError(SessionEvent):
    event_type: str = "agent:stream-error"
    text: str = ""


@dataclass
class StreamComplete(SessionEvent):
    event_type: str = "agent:stream-complete"
    exit_code: int = 0


def event_to_dict(event: SessionEvent) -> dict[str, Any]:
    """Flatten an event into a JSON-friendly dict."""
    data = asdict(event)
    data["event"] = data.pop("event_type")
    return data

