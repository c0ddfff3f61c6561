"""Orchestrator: starts, streams, and stops agent sessions.

Owns the session registry and the log store. Enforces:
- At most one session per workspace, across all providers
- Exactly one terminal marker and one lifecycle event per session
- Only pre-registration failures are raised; everything afterwards is
  reported through events and return values

Sessions run as independent asyncio tasks; the orchestrator's own
operations never wait for a session to finish.
"""
from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import Coroutine
from typing import Any

from .config import EngineConfig, PersistCallback
from .demux import OutputDemultiplexer
from .errors import (
    InvalidSessionRequestError,
    SessionLaunchError,
    TransportUnavailableError,
)
from .events import EventPublisher, SessionEventSink
from .lifecycle import transition
from .log_store import LogStore
from .models import (
    CANCELLED_EXIT_CODE,
    LaunchSpec,
    LogTail,
    OutputRecord,
    SessionHandle,
    SessionKey,
    SessionRequest,
    SessionState,
    SessionStatus,
    TerminalKind,
    TerminalMarker,
)
from .providers.base import Provider
from .providers.registry import ProviderRegistry, build_provider_registry
from .registry import SessionRegistry
from .transports.base import Transport

logger = logging.getLogger(__name__)

STDERR_PREFIX = "[stderr] "

_ENDING_STATE = {
    TerminalKind.COMPLETE: SessionState.COMPLETING,
    TerminalKind.FAILED: SessionState.FAILING,
    TerminalKind.CANCELLED: SessionState.CANCELLING,
}


class Orchestrator:
    """Composes registry, transports, demultiplexer, and log store."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        providers: ProviderRegistry | None = None,
        *,
        event_sink: SessionEventSink | None = None,
        persist_callback: PersistCallback | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._providers = providers or build_provider_registry()
        self._registry = SessionRegistry()
        self._log_store = LogStore(self._config.data_path)
        self._events = EventPublisher(event_sink or self._config.event_sink)
        self._persist = persist_callback or self._config.persist_callback
        # Current session task per key, for wait().
        self._runs: dict[SessionKey, asyncio.Task] = {}
        # Strong refs so background tasks are not garbage collected.
        self._background: set[asyncio.Task] = set()
        self._last_status: dict[SessionKey, SessionStatus] = {}

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def log_store(self) -> LogStore:
        return self._log_store

    @property
    def providers(self) -> ProviderRegistry:
        return self._providers

    # ── Capability probe ──────────────────────────────────────

    def is_available(self, provider_id: str) -> bool:
        return self._providers.is_provider_available(provider_id)

    def install_instructions(self, provider_id: str) -> str:
        return self._providers.install_instructions(provider_id)

    # ── Start ─────────────────────────────────────────────────

    async def start(self, request: SessionRequest) -> SessionHandle:
        """Start a session for ``request.key`` and return once it is streaming.

        Raises InvalidSessionRequestError, ProviderNotFoundError or
        SessionLaunchError before anything is registered.
        """
        self._validate(request)
        provider = self._providers.get_or_raise(request.provider_id)
        key = request.key

        # Free the workspace first, whichever provider holds it.
        evicted = self._registry.evict(key)
        await self._publish_retired([self._retire(h) for h in evicted])

        spec = provider.build_launch_spec(request)
        transport = await self._acquire(key, provider, spec)

        handle = SessionHandle(
            key=key,
            transport=transport,
            correlation_id=request.correlation_id,
        )
        # No awaits from here until the handle is streaming: registration,
        # retiring late conflicts, and opening the log happen atomically.
        evicted = self._registry.register(key, handle)
        retired = [self._retire(h) for h in evicted]
        try:
            self._log_store.ensure(key)
            self._log_store.write_header(key, request.message)
        except OSError as exc:
            self._registry.remove(key, handle)
            transition(handle, SessionState.IDLE)
            transport.cancel()
            self._spawn(transport.reap(self._config.kill_grace_seconds))
            # Sessions evicted above are already finalized; they still
            # get their completion event.
            await self._publish_retired(retired)
            raise SessionLaunchError(key, f"cannot open stream log: {exc}") from exc
        transition(handle, SessionState.STREAMING)
        self._last_status[key] = SessionStatus(
            state=SessionState.STREAMING,
            pid=transport.pid,
            started_at=handle.started_at,
        )
        task = asyncio.create_task(self._run_session(handle, provider))
        self._runs[key] = task
        self._track(task)

        await self._publish_retired(retired)
        logger.info(
            "Session %s started via %s transport (pid=%s)",
            key, transport.name, transport.pid,
        )
        return handle

    def _validate(self, request: SessionRequest) -> None:
        for field_name, label in (
            ("provider_id", "providerId"),
            ("workspace_id", "workspaceId"),
            ("worktree_path", "worktreePath"),
            ("message", "message"),
        ):
            value = getattr(request, field_name)
            if not isinstance(value, str) or not value:
                raise InvalidSessionRequestError(
                    f"{label} must be a non-empty string"
                )
        if request.correlation_id is not None and not isinstance(
            request.correlation_id, str
        ):
            raise InvalidSessionRequestError("conversationId must be a string")

    async def _acquire(
        self, key: SessionKey, provider: Provider, spec: LaunchSpec,
    ) -> Transport:
        """Try transport factories in order, skipping unavailable ones."""
        unavailable: list[str] = []
        last_exc: TransportUnavailableError | None = None
        factories = provider.transport_factories(
            self._config.prefer_stream_transport
        )
        for factory in factories:
            try:
                return await factory.launch(spec)
            except TransportUnavailableError as exc:
                logger.info(
                    "Transport %s unavailable for %s (%s); trying next",
                    factory.name, key, exc.reason,
                )
                unavailable.append(f"{factory.name}: {exc.reason}")
                last_exc = exc
            except Exception as exc:
                logger.error("Failed to launch session %s: %s", key, exc)
                raise SessionLaunchError(
                    key, f"{type(exc).__name__}: {exc}"
                ) from exc
        raise SessionLaunchError(
            key, "no transport available (" + "; ".join(unavailable) + ")"
        ) from last_exc

    # ── Streaming ─────────────────────────────────────────────

    async def _run_session(self, handle: SessionHandle, provider: Provider) -> None:
        transport = handle.transport
        demux = OutputDemultiplexer()
        stderr_task = asyncio.create_task(self._drain_stderr(handle))
        fault: str | None = None
        try:
            async for record in demux.records(transport.stdout()):
                await self._on_record(handle, record)
        except Exception as exc:
            logger.warning("Output stream failed for %s: %s", handle.key, exc)
            fault = f"{type(exc).__name__}: {exc}"
            transport.cancel()
        try:
            await stderr_task
        except Exception as exc:
            logger.warning("Error stream failed for %s: %s", handle.key, exc)
            fault = fault or f"{type(exc).__name__}: {exc}"

        try:
            outcome = await transport.wait()
        except Exception as exc:
            logger.warning("Waiting on %s transport failed: %s", handle.key, exc)
            fault = fault or f"{type(exc).__name__}: {exc}"
            outcome = None

        if fault is not None or outcome is None:
            marker = TerminalMarker.failed(fault or "transport wait failed")
        elif outcome.error is not None:
            marker = TerminalMarker.failed(outcome.error)
        elif outcome.cancelled:
            marker = TerminalMarker.cancelled()
        else:
            marker = provider.classify_exit(outcome.exit_code)
        await self._finish(handle, marker)

        if self._runs.get(handle.key) is asyncio.current_task():
            del self._runs[handle.key]

    async def _on_record(self, handle: SessionHandle, record: OutputRecord) -> None:
        if not handle.is_streaming:
            return
        key = handle.key
        if record.is_line:
            self._log_store.append_line(key, record.text)
        else:
            self._log_store.append(key, record.text)
        await self._events.output(key, record.text)
        if handle.correlation_id and self._persist is not None:
            self._spawn(self._persist_fragment(handle.correlation_id, record.text))

    async def _drain_stderr(self, handle: SessionHandle) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        async for chunk in handle.transport.stderr():
            await self._on_stderr(handle, decoder.decode(chunk))
        await self._on_stderr(handle, decoder.decode(b"", final=True))

    async def _on_stderr(self, handle: SessionHandle, text: str) -> None:
        if not text or not handle.is_streaming:
            return
        self._log_store.append_line(handle.key, STDERR_PREFIX + text)
        await self._events.error(handle.key, text)

    async def _persist_fragment(self, correlation_id: str, text: str) -> None:
        try:
            await self._persist(correlation_id, text, "agent")
        except Exception as exc:
            logger.warning(
                "Failed to persist output for conversation %s: %s",
                correlation_id, exc,
            )

    # ── Termination ───────────────────────────────────────────

    async def _finish(self, handle: SessionHandle, marker: TerminalMarker) -> bool:
        """Complete or fail a session that ended on its own.

        No-op when stop() or an eviction already owns the ending.
        """
        if not handle.is_streaming:
            return False
        key = handle.key
        transition(handle, _ENDING_STATE[marker.kind])
        self._registry.remove(key, handle)
        self._log_store.finalize(key, marker)
        self._record_status(handle, marker)

        if marker.kind == TerminalKind.FAILED:
            await self._events.error(key, marker.message)
        else:
            await self._events.complete(
                key,
                CANCELLED_EXIT_CODE if marker.exit_code is None else marker.exit_code,
            )
        transition(handle, SessionState.TERMINATED)
        logger.info("Session %s ended: %s", key, marker.render())
        return True

    def _retire(self, handle: SessionHandle) -> SessionHandle | None:
        """Cancel-finalize an evicted handle. Synchronous; the caller publishes.

        The registry has already removed the entry and signalled the
        transport.
        """
        if not handle.is_streaming:
            return None
        transition(handle, SessionState.CANCELLING)
        marker = TerminalMarker.cancelled()
        self._log_store.finalize(handle.key, marker)
        self._record_status(handle, marker)
        self._spawn(handle.transport.reap(self._config.kill_grace_seconds))
        return handle

    async def _publish_retired(self, handles: list[SessionHandle | None]) -> None:
        for handle in handles:
            if handle is None:
                continue
            await self._events.complete(handle.key, CANCELLED_EXIT_CODE)
            transition(handle, SessionState.TERMINATED)
            logger.info("Session %s cancelled by eviction", handle.key)

    def _record_status(self, handle: SessionHandle, marker: TerminalMarker) -> None:
        self._last_status[handle.key] = SessionStatus(
            state=SessionState.TERMINATED,
            outcome=marker.kind,
            exit_code=marker.exit_code,
            error_message=marker.message or None,
            started_at=handle.started_at,
        )

    # ── Stop ──────────────────────────────────────────────────

    async def stop(self, key: SessionKey) -> bool:
        """Cancel the session at ``key``.

        Returns True when nothing was running or the cancel signal was
        delivered. On a failed signal the entry and log are still
        released, and False is returned: the agent may still be running
        at the OS level.
        """
        handle = self._registry.lookup(key)
        if handle is None or not handle.is_streaming:
            return True

        # Synchronous section: a concurrent stop() or start() sees the
        # slot already released.
        self._registry.remove(key, handle)
        transition(handle, SessionState.CANCELLING)
        try:
            acknowledged = handle.transport.cancel()
        except Exception as exc:
            logger.warning("Cancel failed for session %s: %s", key, exc)
            acknowledged = False
        marker = TerminalMarker.cancelled()
        self._log_store.finalize(key, marker)
        self._record_status(handle, marker)

        await handle.transport.reap(self._config.kill_grace_seconds)
        await self._events.complete(key, CANCELLED_EXIT_CODE)
        transition(handle, SessionState.TERMINATED)
        logger.info("Session %s cancelled (acknowledged=%s)", key, acknowledged)
        return acknowledged

    async def shutdown(self) -> None:
        """Stop every registered session."""
        keys = self._registry.keys()
        if keys:
            logger.info("Shutting down %d session(s)", len(keys))
        results = await asyncio.gather(
            *(self.stop(k) for k in keys), return_exceptions=True,
        )
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to stop session %s during shutdown: %s", key, result)
            elif result is False:
                logger.warning("Session %s may still be running after shutdown", key)
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Queries ───────────────────────────────────────────────

    async def append(self, key: SessionKey, text: str) -> None:
        """Append ``text`` to an active session's log; no-op otherwise."""
        handle = self._registry.lookup(key)
        if handle is None or not handle.is_streaming:
            return
        self._log_store.append(key, text)

    def lookup(self, key: SessionKey) -> SessionHandle | None:
        return self._registry.lookup(key)

    def status(self, key: SessionKey) -> SessionStatus | None:
        """Live snapshot, else the last known state of the slot."""
        handle = self._registry.lookup(key)
        if handle is not None:
            return SessionStatus(
                state=handle.state,
                pid=handle.transport.pid,
                started_at=handle.started_at,
            )
        return self._last_status.get(key)

    def tail(self, key: SessionKey, max_bytes: int | None = None) -> LogTail:
        """Start time and trailing log content of the active session.

        Empty when nothing is registered at ``key``, even if an older
        log file is still on disk.
        """
        if key not in self._registry:
            return LogTail()
        limit = max_bytes if max_bytes is not None else self._config.tail_max_bytes
        return self._log_store.tail(key, limit)

    async def wait(self, key: SessionKey) -> SessionStatus | None:
        """Wait for the session currently at ``key`` to end."""
        task = self._runs.get(key)
        if task is not None:
            await asyncio.shield(task)
        return self.status(key)

    # ── Background tasks ──────────────────────────────────────

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._track(task)
        return task

    def _track(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)
