"""Per-session append-only stream logs.

Storage layout:
    <data_dir>/agent/<provider>/<workspace>/stream.log

Each file holds a header block, the session's output, and exactly one
terminal marker line. Writes after finalize (or before ensure) are
silent no-ops: late events racing with cleanup must never raise.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TextIO

from .models import LogTail, SessionKey, TerminalMarker

logger = logging.getLogger(__name__)

LOG_FILENAME = "stream.log"


def _safe_segment(value: str) -> str:
    """Make an id usable as a single path component."""
    cleaned = value.replace("/", "_").replace("\\", "_").strip()
    if cleaned in {"", ".", ".."}:
        cleaned = cleaned.replace(".", "_") or "_"
    return cleaned


def log_path_for(base_dir: Path, key: SessionKey) -> Path:
    """Deterministic log location for a session key."""
    return (
        Path(base_dir)
        / "agent"
        / _safe_segment(key.provider_id)
        / _safe_segment(key.workspace_id)
        / LOG_FILENAME
    )


def read_log_tail(path: Path, max_bytes: int) -> str:
    """Read at most the last ``max_bytes`` of a log file.

    Opens the file read-only; returns "" when it does not exist.
    """
    try:
        with open(path, "rb") as f:
            f.seek(0, 2)
            size = f.tell()
            f.seek(max(0, size - max_bytes))
            data = f.read()
    except FileNotFoundError:
        return ""
    return data.decode("utf-8", errors="replace")


@dataclass
class _LogWriter:
    path: Path
    handle: TextIO
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    at_line_start: bool = True

    def write(self, text: str) -> None:
        if not text:
            return
        self.handle.write(text)
        self.handle.flush()
        self.at_line_start = text.endswith("\n")


class LogStore:
    """Owns one lazily-created log writer per session key."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir).expanduser()
        self._writers: dict[SessionKey, _LogWriter] = {}

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def path_for(self, key: SessionKey) -> Path:
        return log_path_for(self._base_dir, key)

    def is_open(self, key: SessionKey) -> bool:
        return key in self._writers

    def ensure(self, key: SessionKey) -> Path:
        """Create the log file (and its directories) once per session.

        Idempotent while the writer is open. A previous session's file at
        the same path is truncated.
        """
        writer = self._writers.get(key)
        if writer is not None:
            return writer.path
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "w", encoding="utf-8")
        self._writers[key] = _LogWriter(path=path, handle=handle)
        logger.debug("Opened stream log %s", path)
        return path

    def write_header(self, key: SessionKey, message: str) -> None:
        """Write the session preamble (provider, workspace, message)."""
        self.append(
            key,
            f"Provider: {key.provider_id}\n"
            f"Workspace: {key.workspace_id}\n"
            f"Message: {message}\n"
            "\n",
        )

    def append(self, key: SessionKey, text: str) -> None:
        """Append text; silently ignored when no writer is open for ``key``."""
        writer = self._writers.get(key)
        if writer is None:
            return
        try:
            writer.write(text)
        except (OSError, ValueError) as exc:
            logger.warning("Stream log append failed for %s: %s", key, exc)

    def append_line(self, key: SessionKey, text: str) -> None:
        """Append text as a whole line, starting a fresh line if needed."""
        writer = self._writers.get(key)
        if writer is None:
            return
        prefix = "" if writer.at_line_start else "\n"
        suffix = "" if text.endswith("\n") else "\n"
        self.append(key, f"{prefix}{text}{suffix}")

    def finalize(self, key: SessionKey, marker: TerminalMarker) -> bool:
        """Write the terminal marker and release the writer.

        Returns False when there was nothing to finalize.
        """
        writer = self._writers.pop(key, None)
        if writer is None:
            return False
        try:
            if not writer.at_line_start:
                writer.write("\n")
            writer.write(marker.render() + "\n")
        except (OSError, ValueError) as exc:
            logger.warning("Stream log finalize failed for %s: %s", key, exc)
        finally:
            try:
                writer.handle.close()
            except OSError:
                pass
        logger.debug("Finalized stream log %s with %s", writer.path, marker.render())
        return True

    def started_at(self, key: SessionKey) -> datetime | None:
        writer = self._writers.get(key)
        return writer.started_at if writer is not None else None

    def tail(self, key: SessionKey, max_bytes: int) -> LogTail:
        """Trailing slice of the log plus its recorded start time."""
        return LogTail(
            started_at=self.started_at(key),
            content=read_log_tail(self.path_for(key), max_bytes),
        )
