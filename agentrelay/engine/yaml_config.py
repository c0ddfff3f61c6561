"""Optional YAML config file for the engine and its providers.

Environment variables still apply underneath: any key the file leaves
out takes its value from ``EngineConfig.from_env()``.

    engine:
      data_dir: ~/.agentrelay
      prefer_stream_transport: true
      kill_grace_seconds: 5
      tail_max_bytes: 16384
      log_level: INFO

    providers:
      claude: {}                    # type defaults to the name
      codex-nightly:
        type: codex
        command: /opt/bin/codex
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import EngineConfig

logger = logging.getLogger(__name__)

_TRUE_WORDS = {"1", "true", "yes", "on"}


@dataclass
class ProviderConfig:
    """One entry of the ``providers`` section."""
    type: str
    command: str | None = None  # CLI binary; None means the type's default


@dataclass
class RelayConfig:
    engine: EngineConfig
    providers: dict[str, ProviderConfig] = field(default_factory=dict)


def _parse_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_WORDS


def _section(raw: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"{path}: '{name}' must be a mapping")
    return value


def _engine_from(section: dict[str, Any]) -> EngineConfig:
    env = EngineConfig.from_env()
    return EngineConfig(
        data_dir=str(section.get("data_dir", env.data_dir)),
        prefer_stream_transport=_parse_bool(
            section.get("prefer_stream_transport"), env.prefer_stream_transport,
        ),
        kill_grace_seconds=float(
            section.get("kill_grace_seconds", env.kill_grace_seconds)
        ),
        tail_max_bytes=int(section.get("tail_max_bytes", env.tail_max_bytes)),
        log_level=str(section.get("log_level", env.log_level)),
    )


def load_yaml_config(path: str | Path) -> RelayConfig:
    """Parse ``path`` into engine settings and provider definitions.

    Raises FileNotFoundError, yaml.YAMLError, or ValueError for a file
    whose shape is wrong; each is logged first.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("Config file not found: %s", path.absolute())
        raise
    except yaml.YAMLError as exc:
        logger.error("Config file %s is not valid YAML: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        logger.error("Config file %s: top level is %s", path, type(raw).__name__)
        raise ValueError(f"{path}: top-level YAML must be a mapping")

    engine = _engine_from(_section(raw, "engine", path))
    providers = {
        name: ProviderConfig(
            type=str((entry or {}).get("type", name)),
            command=(entry or {}).get("command"),
        )
        for name, entry in _section(raw, "providers", path).items()
    }
    logger.info(
        "Loaded %s: data_dir=%s providers=%s",
        path.name, engine.data_dir, ", ".join(providers) or "(defaults)",
    )
    return RelayConfig(engine=engine, providers=providers)
