"""Typed publish interface for session events.

Exactly three event kinds per session key. Subscribers implement
SessionEventSink; the engine publishes through EventPublisher, which
never lets a subscriber failure reach a session.
"""
from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from .models import SessionKey

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionEventSink(Protocol):
    """Receives output, side-channel error, and completion events."""

    async def on_output(self, key: SessionKey, text: str) -> None: ...

    async def on_error(self, key: SessionKey, text: str) -> None: ...

    async def on_complete(self, key: SessionKey, exit_code: int) -> None: ...


class EventPublisher:
    """Publishes to an optional sink, swallowing subscriber errors."""

    def __init__(self, sink: SessionEventSink | None = None) -> None:
        self._sink = sink

    @property
    def sink(self) -> SessionEventSink | None:
        return self._sink

    async def output(self, key: SessionKey, text: str) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.on_output(key, text)
        except Exception:
            logger.warning("Output subscriber failed for %s", key, exc_info=True)

    async def error(self, key: SessionKey, text: str) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.on_error(key, text)
        except Exception:
            logger.warning("Error subscriber failed for %s", key, exc_info=True)

    async def complete(self, key: SessionKey, exit_code: int) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.on_complete(key, exit_code)
        except Exception:
            logger.warning("Complete subscriber failed for %s", key, exc_info=True)
