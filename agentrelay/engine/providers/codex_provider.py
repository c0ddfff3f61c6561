"""OpenAI Codex CLI provider.

Uses `codex exec` in full-auto mode. Output is plain text, which the
demultiplexer passes through line by line.
"""
from __future__ import annotations

from .base import Provider


class CodexProvider(Provider):
    """Provider backed by the OpenAI Codex CLI."""

    @property
    def name(self) -> str:
        return "codex"

    @property
    def default_command(self) -> str:
        return "codex"

    def build_args(self, message: str) -> list[str]:
        # Full-auto mode: no interactive permission prompts.
        return ["exec", "--full-auto", message]

    def install_instructions(self) -> str:
        return (
            "Install Codex CLI: npm install -g @openai/codex\n"
            "Then run `codex` once to sign in."
        )
