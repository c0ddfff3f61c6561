"""Tests for env and YAML configuration loading."""
from __future__ import annotations

import pytest
import yaml

from agentrelay.engine.config import EngineConfig
from agentrelay.engine.yaml_config import load_yaml_config


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "AGENTRELAY_DATA_DIR",
        "AGENTRELAY_PREFER_SDK",
        "AGENTRELAY_KILL_GRACE",
        "AGENTRELAY_TAIL_BYTES",
        "AGENTRELAY_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    config = EngineConfig.from_env()
    assert config.data_dir.endswith(".agentrelay")
    assert config.prefer_stream_transport is True
    assert config.kill_grace_seconds == 5.0
    assert config.tail_max_bytes == 16384
    assert config.log_level == "INFO"


def test_env_overrides(clean_env, tmp_path):
    clean_env.setenv("AGENTRELAY_DATA_DIR", str(tmp_path))
    clean_env.setenv("AGENTRELAY_PREFER_SDK", "no")
    clean_env.setenv("AGENTRELAY_KILL_GRACE", "1.5")
    clean_env.setenv("AGENTRELAY_TAIL_BYTES", "512")
    clean_env.setenv("AGENTRELAY_LOG_LEVEL", "DEBUG")

    config = EngineConfig.from_env()
    assert config.data_path == tmp_path
    assert config.prefer_stream_transport is False
    assert config.kill_grace_seconds == 1.5
    assert config.tail_max_bytes == 512
    assert config.log_level == "DEBUG"


def test_data_path_expands_user(clean_env, monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert EngineConfig(data_dir="~/relay").data_path == tmp_path / "relay"


def test_yaml_engine_and_providers(clean_env, tmp_path):
    path = tmp_path / "relay.yaml"
    path.write_text(yaml.safe_dump({
        "engine": {
            "data_dir": str(tmp_path / "data"),
            "prefer_stream_transport": False,
            "kill_grace_seconds": 2,
        },
        "providers": {
            "claude": None,
            "codex-nightly": {"type": "codex", "command": "/opt/bin/codex"},
        },
    }))

    relay = load_yaml_config(path)
    assert relay.engine.data_dir == str(tmp_path / "data")
    assert relay.engine.prefer_stream_transport is False
    assert relay.engine.kill_grace_seconds == 2.0
    assert relay.engine.tail_max_bytes == 16384
    assert relay.providers["claude"].type == "claude"
    assert relay.providers["claude"].command is None
    assert relay.providers["codex-nightly"].type == "codex"
    assert relay.providers["codex-nightly"].command == "/opt/bin/codex"


def test_yaml_falls_back_to_env(clean_env, tmp_path):
    clean_env.setenv("AGENTRELAY_TAIL_BYTES", "99")
    path = tmp_path / "relay.yaml"
    path.write_text("engine: {}\n")
    relay = load_yaml_config(path)
    assert relay.engine.tail_max_bytes == 99
    assert relay.providers == {}


def test_yaml_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_yaml_config(tmp_path / "missing.yaml")


def test_yaml_must_be_mapping(tmp_path):
    path = tmp_path / "relay.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        load_yaml_config(path)


def test_yaml_parse_error(tmp_path):
    path = tmp_path / "relay.yaml"
    path.write_text("engine: [unclosed\n")
    with pytest.raises(yaml.YAMLError):
        load_yaml_config(path)
