"""Stream transport: drives the Claude Agent SDK's ``query()`` in-process.

The SDK is an optional dependency. When it cannot be imported the
factory reports the transport as unavailable and the orchestrator
falls back to spawning the CLI.

SDK messages are re-encoded as JSON lines so the session pipeline
treats both transports identically.
"""
from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from ..errors import TransportUnavailableError
from ..models import LaunchSpec
from .base import Transport, TransportExit, TransportFactory

logger = logging.getLogger(__name__)


def message_to_record(message: Any) -> dict[str, Any]:
    """Convert an SDK message object into a plain JSON-able dict."""
    if isinstance(message, dict):
        record = dict(message)
    elif dataclasses.is_dataclass(message) and not isinstance(message, type):
        record = dataclasses.asdict(message)
    elif hasattr(message, "__dict__"):
        record = dict(vars(message))
    else:
        record = {"message": str(message)}
    record.setdefault("type", type(message).__name__)
    return record


def encode_message(message: Any) -> bytes:
    record = message_to_record(message)
    return (json.dumps(record, default=str) + "\n").encode("utf-8")


class StreamTransport(Transport):
    """Runs an async record source as an independent task.

    ``cancel()`` sets an abort event and cancels the driving task; the
    loop stops consuming records and the outcome is reported as
    cancelled, not failed.
    """

    def __init__(
        self,
        source_factory: Callable[[], AsyncIterator[Any]],
    ) -> None:
        self._source_factory = source_factory
        self._out: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._err: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._abort = asyncio.Event()
        self._exit: TransportExit | None = None
        self._task = asyncio.create_task(self._drive())
        # Runs even when the task is cancelled before it starts.
        self._task.add_done_callback(self._close_streams)

    @property
    def name(self) -> str:
        return "sdk"

    def emit_stderr(self, line: str) -> None:
        """Sink for the SDK's stderr callback."""
        if not line:
            return
        if not line.endswith("\n"):
            line += "\n"
        self._err.put_nowait(line.encode("utf-8"))

    async def _drive(self) -> None:
        try:
            source = self._source_factory()
            async for message in source:
                if self._abort.is_set():
                    break
                self._out.put_nowait(encode_message(message))
            if self._abort.is_set():
                self._exit = TransportExit(cancelled=True)
            else:
                self._exit = TransportExit(exit_code=0)
        except asyncio.CancelledError:
            if not self._abort.is_set():
                raise
            self._exit = TransportExit(cancelled=True)
        except Exception as exc:
            if self._abort.is_set():
                self._exit = TransportExit(cancelled=True)
            else:
                logger.warning("SDK stream failed: %s", exc, exc_info=True)
                self._exit = TransportExit(error=f"{type(exc).__name__}: {exc}")

    def _close_streams(self, _task: asyncio.Task) -> None:
        self._out.put_nowait(None)
        self._err.put_nowait(None)

    async def _drain(self, queue: asyncio.Queue[bytes | None]) -> AsyncIterator[bytes]:
        while True:
            chunk = await queue.get()
            if chunk is None:
                return
            yield chunk

    def stdout(self) -> AsyncIterator[bytes]:
        return self._drain(self._out)

    def stderr(self) -> AsyncIterator[bytes]:
        return self._drain(self._err)

    async def wait(self) -> TransportExit:
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.done():
                raise
        if self._exit is None:
            if self._abort.is_set():
                self._exit = TransportExit(cancelled=True)
            else:
                self._exit = TransportExit(error="SDK stream ended without an outcome")
        return self._exit

    def cancel(self) -> bool:
        if self._task.done():
            return True
        self._abort.set()
        self._task.cancel()
        logger.info("Abort signalled to SDK stream")
        return True


class SdkTransportFactory(TransportFactory):
    """Resolves ``claude_agent_sdk`` lazily at launch time."""

    @property
    def name(self) -> str:
        return "sdk"

    async def launch(self, spec: LaunchSpec) -> Transport:
        try:
            from claude_agent_sdk import ClaudeAgentOptions, query
        except ImportError as exc:
            raise TransportUnavailableError(
                self.name, "claude_agent_sdk not installed",
            ) from exc

        transport: StreamTransport | None = None

        def _capture_stderr(line: str) -> None:
            if transport is not None:
                transport.emit_stderr(line)

        options = ClaudeAgentOptions(
            allowed_tools=list(spec.allowed_tools),
            permission_mode=spec.permission_mode,
            cwd=spec.cwd or ".",
            env=dict(spec.env or {}),
            stderr=_capture_stderr,
        )

        def _source() -> AsyncIterator[Any]:
            return query(prompt=spec.prompt, options=options)

        transport = StreamTransport(_source)
        logger.info("SDK stream started (cwd=%s)", spec.cwd)
        return transport
