"""Reassemble raw transport bytes into logical output records.

Agent CLIs emit newline-delimited JSON, but the bytes arrive in
arbitrary chunks: a record may straddle two reads, and a multi-byte
character may be split mid-sequence. The demultiplexer buffers bytes,
cuts complete lines, and classifies each one. Lines that are not JSON
objects are passed through verbatim, since providers interleave plain
diagnostic text with structured records.

One instance per session; state is never shared across sessions.
"""
from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterator
from typing import Any

from .models import OutputKind, OutputRecord

logger = logging.getLogger(__name__)

_NEWLINE = b"\n"


def _delta_text(record: dict[str, Any]) -> str | None:
    """Text of a partial-message delta, top level or wrapped in ``event``."""
    for container in (record, record.get("event")):
        if not isinstance(container, dict):
            continue
        delta = container.get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("text"), str):
            return delta["text"]
    return None


def _content_text(content: Any) -> str | None:
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return None
    parts: list[str] = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            parts.append(part["text"])
    if not parts:
        return None
    return "\n".join(parts)


def _assistant_text(record: dict[str, Any]) -> str | None:
    """Assistant content at the top level or under ``message``."""
    text = _content_text(record.get("content"))
    if text is not None:
        return text
    message = record.get("message")
    if isinstance(message, dict):
        return _content_text(message.get("content"))
    return None


def classify_line(line: str) -> OutputRecord | None:
    """Classify one complete line (terminator included).

    Returns None for JSON objects that carry no displayable text
    (e.g. init or tool-use bookkeeping records).
    """
    try:
        record = json.loads(line)
    except ValueError:
        return OutputRecord(OutputKind.RAW_LINE, line)
    if not isinstance(record, dict):
        return OutputRecord(OutputKind.RAW_LINE, line)

    text = _delta_text(record)
    if text is not None:
        return OutputRecord(OutputKind.STREAM_DELTA, text)
    text = _assistant_text(record)
    if text is not None:
        return OutputRecord(OutputKind.ASSISTANT_TEXT, text)
    if isinstance(record.get("result"), str):
        return OutputRecord(OutputKind.RESULT_TEXT, record["result"])
    if isinstance(record.get("message"), str):
        return OutputRecord(OutputKind.GENERIC_MESSAGE, record["message"])

    logger.debug("Skipping structured record without text: type=%s", record.get("type"))
    return None


class OutputDemultiplexer:
    """Incremental bytes -> OutputRecord converter for one session."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding
        self._pending = bytearray()
        # Bytes of _pending already searched for a newline.
        self._scanned = 0

    @property
    def pending(self) -> bytes:
        """Bytes buffered after the last complete line."""
        return bytes(self._pending)

    def feed(self, chunk: bytes) -> Iterator[OutputRecord]:
        """Buffer ``chunk`` and lazily yield every record it completes."""
        self._pending.extend(chunk)
        while True:
            idx = self._pending.find(_NEWLINE, self._scanned)
            if idx < 0:
                self._scanned = len(self._pending)
                return
            raw = bytes(self._pending[: idx + 1])
            del self._pending[: idx + 1]
            self._scanned = 0
            record = classify_line(raw.decode(self._encoding, errors="replace"))
            if record is not None:
                yield record

    def flush(self) -> Iterator[OutputRecord]:
        """Yield a record for any unterminated tail left at end of stream."""
        if not self._pending:
            return
        raw = bytes(self._pending)
        self._pending.clear()
        self._scanned = 0
        record = classify_line(raw.decode(self._encoding, errors="replace"))
        if record is not None:
            yield record

    async def records(
        self, chunks: AsyncIterable[bytes],
    ) -> AsyncIterator[OutputRecord]:
        """Drive the demultiplexer over an async byte stream."""
        async for chunk in chunks:
            for record in self.feed(chunk):
                yield record
        for record in self.flush():
            yield record
