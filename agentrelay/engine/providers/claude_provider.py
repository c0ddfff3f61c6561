"""Claude Code provider.

Prefers the Claude Agent SDK's in-process stream and falls back to
`claude -p ... --output-format stream-json` when the SDK is not
installed.
"""
from __future__ import annotations

from ..transports.base import TransportFactory
from ..transports.process import ProcessTransportFactory
from ..transports.stream import SdkTransportFactory
from .base import Provider


class ClaudeProvider(Provider):
    """Provider backed by Claude Code.

    Auth: the CLI and SDK use the user's existing login; no API key is
    passed here.
    """

    permission_mode = "acceptEdits"
    allowed_tools = ("Edit", "MultiEdit", "Write", "Read")

    @property
    def name(self) -> str:
        return "claude"

    @property
    def default_command(self) -> str:
        return "claude"

    def build_args(self, message: str) -> list[str]:
        args = [
            "-p", message,
            "--verbose",
            "--output-format", "stream-json",
            "--permission-mode", self.permission_mode,
        ]
        for tool in self.allowed_tools:
            args.extend(["--allowedTools", tool])
        return args

    def install_instructions(self) -> str:
        return (
            "Install Claude Code: npm install -g @anthropic-ai/claude-code\n"
            "Then run `claude` once to sign in."
        )

    def transport_factories(
        self, prefer_stream: bool = True,
    ) -> list[TransportFactory]:
        if prefer_stream:
            return [SdkTransportFactory(), ProcessTransportFactory()]
        return [ProcessTransportFactory()]
