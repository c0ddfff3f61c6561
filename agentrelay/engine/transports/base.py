"""Abstract base for session transports.

A transport is the execution backend of one session: either a CLI
subprocess or an in-process SDK record stream. The orchestrator only
sees byte streams, an exit outcome, and a cancel operation.
"""
from __future__ import annotations

import abc
import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from ..models import LaunchSpec

logger = logging.getLogger(__name__)


@dataclass
class TransportExit:
    """How a transport ended.

    ``error`` is set for runtime faults (reported as Failed, never raised);
    ``cancelled`` when the end was induced by cancel().
    """
    exit_code: int | None = None
    error: str | None = None
    cancelled: bool = False


class Transport(abc.ABC):
    """A running session backend."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short transport name (e.g. 'process', 'sdk')."""

    @property
    def pid(self) -> int | None:
        """OS process id, when the transport has one."""
        return None

    @abc.abstractmethod
    def stdout(self) -> AsyncIterator[bytes]:
        """Raw output chunks, in production order, until end of stream."""

    @abc.abstractmethod
    def stderr(self) -> AsyncIterator[bytes]:
        """Raw side-channel (diagnostic) chunks until end of stream."""

    @abc.abstractmethod
    async def wait(self) -> TransportExit:
        """Wait for the transport to end. Never raises for runtime faults."""

    @abc.abstractmethod
    def cancel(self) -> bool:
        """Request cancellation without waiting.

        Returns True when the request was delivered or the target is
        already gone, False when it could not be delivered.
        """

    def kill(self) -> None:
        """Hard stop after cancel() was ignored. Default: cancel again."""
        self.cancel()

    async def reap(self, grace_seconds: float) -> None:
        """After cancel(): wait up to ``grace_seconds``, then kill."""
        try:
            await asyncio.wait_for(self.wait(), timeout=grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "%s transport still running %.1fs after cancel; killing",
                self.name, grace_seconds,
            )
            self.kill()
            try:
                await asyncio.wait_for(self.wait(), timeout=grace_seconds)
            except asyncio.TimeoutError:
                logger.error("%s transport did not exit after kill", self.name)


class TransportFactory(abc.ABC):
    """Acquires transports of one variant.

    ``launch`` raises TransportUnavailableError when the variant cannot
    be used here (fall back to the next factory), and any other
    exception for a genuine launch failure.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Name of the transport variant this factory produces."""

    @abc.abstractmethod
    async def launch(self, spec: LaunchSpec) -> Transport:
        """Start a transport for ``spec``."""
