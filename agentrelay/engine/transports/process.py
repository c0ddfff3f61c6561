"""Process transport: an agent CLI running as an OS subprocess."""
from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import AsyncIterator

from ..models import LaunchSpec
from .base import Transport, TransportExit, TransportFactory

logger = logging.getLogger(__name__)

_READ_SIZE = 4096


def build_env(overrides: dict[str, str] | None) -> dict[str, str] | None:
    """Parent environment merged with ``overrides`` (None when no overrides)."""
    if not overrides:
        return None
    env = os.environ.copy()
    env.update(overrides)
    return env


class ProcessTransport(Transport):
    """Wraps an ``asyncio.subprocess.Process`` started in its own session."""

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc

    @property
    def name(self) -> str:
        return "process"

    @property
    def pid(self) -> int | None:
        return self._proc.pid

    async def _read(self, reader: asyncio.StreamReader | None) -> AsyncIterator[bytes]:
        if reader is None:
            return
        while True:
            chunk = await reader.read(_READ_SIZE)
            if not chunk:
                return
            yield chunk

    def stdout(self) -> AsyncIterator[bytes]:
        return self._read(self._proc.stdout)

    def stderr(self) -> AsyncIterator[bytes]:
        return self._read(self._proc.stderr)

    async def wait(self) -> TransportExit:
        code = await self._proc.wait()
        return TransportExit(exit_code=code)

    def _signal(self, sig: int) -> bool:
        if self._proc.returncode is not None:
            return True
        try:
            # Signal the whole process group so tool subprocesses go too.
            if hasattr(os, "killpg"):
                os.killpg(self._proc.pid, sig)
            else:
                self._proc.send_signal(sig)
        except ProcessLookupError:
            # Already exited.
            return True
        except OSError as exc:
            logger.warning(
                "Failed to signal agent process pid=%s sig=%s: %s",
                self._proc.pid, sig, exc,
            )
            return False
        return True

    def cancel(self) -> bool:
        delivered = self._signal(signal.SIGTERM)
        logger.info(
            "Sent SIGTERM to agent process pid=%s (delivered=%s)",
            self._proc.pid, delivered,
        )
        return delivered

    def kill(self) -> None:
        self._signal(getattr(signal, "SIGKILL", signal.SIGTERM))


class ProcessTransportFactory(TransportFactory):
    """Spawns the provider CLI with an argument vector (no shell)."""

    @property
    def name(self) -> str:
        return "process"

    async def launch(self, spec: LaunchSpec) -> Transport:
        # create_subprocess_exec passes args as an array, no shell.
        # FileNotFoundError / PermissionError propagate to the caller.
        proc = await asyncio.create_subprocess_exec(
            spec.command,
            *spec.args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=build_env(spec.env),
            cwd=spec.cwd or None,
            start_new_session=True,
        )
        logger.info(
            "Agent process started: %s (pid=%d, cwd=%s)",
            spec.command, proc.pid, spec.cwd,
        )
        return ProcessTransport(proc)
