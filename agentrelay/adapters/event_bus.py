"""Async event bus bridging session events to a presentation consumer.

Sessions publish through the orchestrator's sink interface; the
EventBus queues typed events for the consumer loop.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from agentrelay.adapters.events import (
    SessionEvent,
    StreamComplete,
    StreamError,
    StreamOutput,
)
from agentrelay.engine.models import SessionKey

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue implementing SessionEventSink for one consumer."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue(
            maxsize=maxsize
        )
        self._closed = False

    async def on_output(self, key: SessionKey, text: str) -> None:
        await self.emit(StreamOutput(
            provider_id=key.provider_id,
            workspace_id=key.workspace_id,
            text=text,
        ))

    async def on_error(self, key: SessionKey, text: str) -> None:
        await self.emit(StreamError(
            provider_id=key.provider_id,
            workspace_id=key.workspace_id,
            text=text,
        ))

    async def on_complete(self, key: SessionKey, exit_code: int) -> None:
        await self.emit(StreamComplete(
            provider_id=key.provider_id,
            workspace_id=key.workspace_id,
            exit_code=exit_code,
        ))

    async def emit(self, event: SessionEvent) -> None:
        """Queue an event, applying backpressure instead of dropping."""
        if self._closed:
            return
        try:
            await asyncio.wait_for(self._queue.put(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for 30s, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[SessionEvent]:
        """Yield events as they arrive. Stops once closed and drained."""
        while not (self._closed and self._queue.empty()):
            try:
                event = await asyncio.wait_for(
                    self._queue.get(), timeout=0.5
                )
                yield event
            except asyncio.TimeoutError:
                continue

    def close(self) -> None:
        """Stop accepting events; consume() ends after draining."""
        self._closed = True

    @property
    def pending(self) -> int:
        return self._queue.qsize()
