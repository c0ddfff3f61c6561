"""Abstract base for agent providers.

Each provider describes one agent CLI (Claude Code, OpenAI Codex, ...):
how to invoke it, how to probe whether it is installed, and which
transports can serve it, in order of preference. Providers hold no
session state; the orchestrator owns all of it.
"""
from __future__ import annotations

import abc
import logging
import shutil

from ..models import LaunchSpec, SessionRequest, TerminalMarker
from ..transports.base import TransportFactory
from ..transports.process import ProcessTransportFactory

logger = logging.getLogger(__name__)


class Provider(abc.ABC):
    """Abstract provider interface.

    Implementations describe a specific agent CLI:
    - ClaudeProvider: Claude Code (SDK stream, falling back to `claude -p`)
    - CodexProvider: OpenAI Codex CLI (`codex exec`)
    """

    # Static permission policy handed to the agent.
    permission_mode: str = "default"
    allowed_tools: tuple[str, ...] = ()

    def __init__(self, command: str | None = None) -> None:
        self._command = self.resolve_command(
            command or self.default_command, self.default_command,
        )

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short provider name (e.g. 'claude', 'codex')."""

    @property
    @abc.abstractmethod
    def default_command(self) -> str:
        """Executable name looked up on PATH."""

    @property
    def command(self) -> str:
        return self._command

    @abc.abstractmethod
    def build_args(self, message: str) -> list[str]:
        """Argument vector for the CLI (excluding the executable).

        The vector's shape is fixed; only the message is substituted.
        """

    @abc.abstractmethod
    def install_instructions(self) -> str:
        """Human-readable instructions for installing the CLI."""

    def is_available(self) -> bool:
        """Check if the CLI is installed.

        Only used for user-facing messaging; never consulted before a
        launch.
        """
        return shutil.which(self._command) is not None

    def resolve_command(self, command: str, fallback: str | None = None) -> str:
        """Resolve a provider binary by preferring explicit command, then fallback.

        The command may point to a CLI that is not on PATH when using
        custom wrappers or tests. In that case, keep the raw value so
        launch errors name the configured command.
        """
        if command:
            if shutil.which(command):
                return command
            if fallback and shutil.which(fallback):
                logger.debug(
                    "Command %s not found; falling back to %s for provider %s",
                    command, fallback, self.name,
                )
                return fallback
            return command
        return fallback or command

    def build_launch_spec(self, request: SessionRequest) -> LaunchSpec:
        """Everything a transport factory needs for ``request``."""
        return LaunchSpec(
            command=self._command,
            args=self.build_args(request.message),
            cwd=request.worktree_path,
            prompt=request.message,
            permission_mode=self.permission_mode,
            allowed_tools=list(self.allowed_tools),
            env=dict(request.env) if request.env else None,
        )

    def transport_factories(
        self, prefer_stream: bool = True,
    ) -> list[TransportFactory]:
        """Transport factories to try, most preferred first.

        Default: the CLI subprocess only.
        """
        return [ProcessTransportFactory()]

    def classify_exit(self, exit_code: int | None) -> TerminalMarker:
        """Terminal marker for a transport that ended on its own.

        Exit code semantics are provider-defined; by default any exit,
        zero or not, is a completion carrying its code.
        """
        return TerminalMarker.complete(-1 if exit_code is None else exit_code)
