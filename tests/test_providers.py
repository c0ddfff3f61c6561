"""Tests for Claude/Codex providers and the provider registry."""
from __future__ import annotations

import asyncio
import sys
from unittest.mock import patch

import pytest

from agentrelay.engine.config import EngineConfig
from agentrelay.engine.errors import ProviderNotFoundError
from agentrelay.engine.models import SessionRequest, TerminalKind
from agentrelay.engine.orchestrator import Orchestrator
from agentrelay.engine.providers import (
    ClaudeProvider,
    CodexProvider,
    ProviderRegistry,
    build_provider_registry,
)
from agentrelay.engine.transports.process import ProcessTransportFactory
from agentrelay.engine.transports.stream import SdkTransportFactory
from agentrelay.engine.yaml_config import ProviderConfig


CLAUDE_ARGS = [
    "-p", "cli message",
    "--verbose",
    "--output-format", "stream-json",
    "--permission-mode", "acceptEdits",
    "--allowedTools", "Edit",
    "--allowedTools", "MultiEdit",
    "--allowedTools", "Write",
    "--allowedTools", "Read",
]


def test_claude_argument_vector():
    assert ClaudeProvider().build_args("cli message") == CLAUDE_ARGS


def test_message_is_one_argument_even_with_shell_metacharacters():
    args = ClaudeProvider().build_args("rm -rf / ; echo $HOME")
    assert args[1] == "rm -rf / ; echo $HOME"
    assert len(args) == len(CLAUDE_ARGS)


def test_codex_argument_vector():
    assert CodexProvider().build_args("add docs") == ["exec", "--full-auto", "add docs"]


def test_claude_launch_spec_carries_permission_policy():
    req = SessionRequest("claude", "ws1", "/work/tree", "fix it")
    spec = ClaudeProvider().build_launch_spec(req)
    assert spec.permission_mode == "acceptEdits"
    assert spec.allowed_tools == ["Edit", "MultiEdit", "Write", "Read"]
    assert spec.cwd == "/work/tree"
    assert spec.prompt == "fix it"
    assert spec.env is None


def test_claude_prefers_sdk_then_process():
    kinds = [type(f) for f in ClaudeProvider().transport_factories(True)]
    assert kinds == [SdkTransportFactory, ProcessTransportFactory]
    kinds = [type(f) for f in ClaudeProvider().transport_factories(False)]
    assert kinds == [ProcessTransportFactory]
    kinds = [type(f) for f in CodexProvider().transport_factories(True)]
    assert kinds == [ProcessTransportFactory]


def test_nonzero_exit_is_still_completion():
    marker = CodexProvider().classify_exit(1)
    assert marker.kind == TerminalKind.COMPLETE
    assert marker.exit_code == 1
    assert CodexProvider().classify_exit(None).exit_code == -1


def test_is_available_uses_path_lookup():
    provider = CodexProvider()
    with patch("shutil.which", return_value="/usr/bin/codex"):
        assert provider.is_available() is True
    with patch("shutil.which", return_value=None):
        assert provider.is_available() is False


def test_install_instructions_mention_package():
    assert "@anthropic-ai/claude-code" in ClaudeProvider().install_instructions()
    assert "@openai/codex" in CodexProvider().install_instructions()


def test_explicit_command_kept_when_not_on_path():
    with patch("shutil.which", return_value=None):
        provider = CodexProvider(command="/opt/custom/codex")
    assert provider.command == "/opt/custom/codex"


# ── Registry ──


def test_default_registry_has_claude_and_codex():
    registry = build_provider_registry()
    assert registry.list_names() == ["claude", "codex"]
    assert registry.count == 2


def test_registry_from_configs_skips_unknown_types():
    registry = build_provider_registry({
        "claude-work": ProviderConfig(type="claude", command="claude"),
        "mystery": ProviderConfig(type="gemini"),
    })
    assert registry.list_names() == ["claude-work"]
    assert isinstance(registry.get("claude-work"), ClaudeProvider)


def test_get_or_raise_lists_known_providers():
    registry = ProviderRegistry()
    registry.register("codex", CodexProvider())
    with pytest.raises(ProviderNotFoundError, match="Available providers: codex"):
        registry.get_or_raise("claude")


def test_availability_report():
    registry = ProviderRegistry()
    registry.register("claude", ClaudeProvider())
    registry.register("codex", CodexProvider())

    def _which(cmd):
        return "/usr/bin/claude" if cmd == "claude" else None

    with patch("shutil.which", side_effect=_which):
        assert registry.get_availability_report() == {"claude": True, "codex": False}
        assert registry.list_available() == ["claude"]
        assert registry.is_provider_available("codex") is False
        assert registry.is_provider_available("unknown") is False


# ── Launch through the orchestrator ──


class _FakeProc:
    def __init__(self):
        self.pid = 99999
        self.returncode = None
        self.stdout = asyncio.StreamReader()
        self.stdout.feed_data(b'{"type": "result", "result": "ok"}\n')
        self.stdout.feed_eof()
        self.stderr = asyncio.StreamReader()
        self.stderr.feed_eof()

    async def wait(self):
        self.returncode = 0
        return 0


@pytest.mark.asyncio
async def test_claude_falls_back_to_cli_with_exact_argv(tmp_path, monkeypatch):
    # No SDK importable: the stream transport is unavailable.
    monkeypatch.setitem(sys.modules, "claude_agent_sdk", None)
    calls = []

    async def _fake_exec(program, *args, **kwargs):
        calls.append((program, list(args), kwargs))
        return _FakeProc()

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_exec)

    registry = ProviderRegistry()
    registry.register("claude", ClaudeProvider())
    config = EngineConfig(data_dir=str(tmp_path / "data"))
    orch = Orchestrator(config, registry)
    req = SessionRequest("claude", "ws1", str(tmp_path), "cli message")

    await orch.start(req)
    status = await orch.wait(req.key)

    assert len(calls) == 1
    program, args, kwargs = calls[0]
    assert program == ClaudeProvider().command
    assert args == CLAUDE_ARGS
    assert kwargs["cwd"] == str(tmp_path)
    assert kwargs["start_new_session"] is True
    assert status.outcome == TerminalKind.COMPLETE
    assert status.exit_code == 0
