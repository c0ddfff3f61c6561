"""Core data models for the session engine.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .transports.base import Transport

# Exit code reported for a session that was cancelled rather than
# exiting on its own (what a signal-killed process reports).
CANCELLED_EXIT_CODE = -1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionKey:
    """Identifies a registry slot: one provider serving one workspace."""
    provider_id: str
    workspace_id: str

    def __str__(self) -> str:
        return f"{self.provider_id}:{self.workspace_id}"


class SessionState(str, Enum):
    """Session lifecycle states. See lifecycle.py for transition rules."""
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETING = "completing"
    FAILING = "failing"
    CANCELLING = "cancelling"
    TERMINATED = "terminated"


class OutputKind(str, Enum):
    """Classification of a demultiplexed output line."""
    STREAM_DELTA = "stream_delta"
    ASSISTANT_TEXT = "assistant_text"
    RESULT_TEXT = "result_text"
    GENERIC_MESSAGE = "generic_message"
    RAW_LINE = "raw_line"


@dataclass(frozen=True)
class OutputRecord:
    """One logical record reassembled from transport bytes.

    Downstream consumers only read ``text``; ``kind`` is kept for
    diagnostics and for deciding how the record is laid out in the log.
    """
    kind: OutputKind
    text: str

    @property
    def is_line(self) -> bool:
        """True when the record stands on its own line in the log."""
        return self.kind not in (OutputKind.STREAM_DELTA, OutputKind.RAW_LINE)


class TerminalKind(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TerminalMarker:
    """The single end-of-session outcome written to a session's log."""
    kind: TerminalKind
    exit_code: int | None = None
    message: str = ""

    @classmethod
    def complete(cls, exit_code: int) -> TerminalMarker:
        return cls(kind=TerminalKind.COMPLETE, exit_code=exit_code)

    @classmethod
    def failed(cls, message: str) -> TerminalMarker:
        return cls(kind=TerminalKind.FAILED, message=message)

    @classmethod
    def cancelled(cls) -> TerminalMarker:
        return cls(kind=TerminalKind.CANCELLED, exit_code=CANCELLED_EXIT_CODE)

    def render(self) -> str:
        """Return the marker line as it appears in ``stream.log``."""
        if self.kind == TerminalKind.COMPLETE:
            return f"[COMPLETE] exit code {self.exit_code}"
        if self.kind == TerminalKind.FAILED:
            # Keep the marker on a single line.
            message = " ".join(self.message.split())
            return f"[ERROR] {message}" if message else "[ERROR]"
        return "[CANCELLED]"


@dataclass
class SessionRequest:
    """A user request to run an agent against a workspace."""
    provider_id: str
    workspace_id: str
    worktree_path: str
    message: str
    correlation_id: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> SessionKey:
        return SessionKey(self.provider_id, self.workspace_id)


@dataclass
class LaunchSpec:
    """Everything a transport factory needs to acquire a transport.

    Process transports use ``command``/``args``/``env``; stream
    transports use ``prompt`` and the permission policy fields.
    """
    command: str
    args: list[str]
    cwd: str
    prompt: str
    permission_mode: str = "default"
    allowed_tools: list[str] = field(default_factory=list)
    env: dict[str, str] | None = None


@dataclass
class SessionHandle:
    """A registered, running session.

    Identity fields are fixed at creation. Only ``state`` moves, and
    only through the orchestrator.
    """
    key: SessionKey
    transport: Transport
    correlation_id: str | None = None
    started_at: datetime = field(default_factory=_utcnow)
    state: SessionState = SessionState.STARTING

    @property
    def is_streaming(self) -> bool:
        return self.state == SessionState.STREAMING


@dataclass
class SessionStatus:
    """Observable snapshot of a session slot."""
    state: SessionState
    outcome: TerminalKind | None = None
    pid: int | None = None
    exit_code: int | None = None
    error_message: str | None = None
    started_at: datetime | None = None


@dataclass
class LogTail:
    """Result of a log tail query."""
    started_at: datetime | None = None
    content: str = ""

    @property
    def is_empty(self) -> bool:
        return self.started_at is None and not self.content
