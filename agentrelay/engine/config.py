"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via AGENTRELAY_* env vars.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .events import SessionEventSink

logger = logging.getLogger(__name__)


# Optional async callback for durable fragment persistence.
# Signature: async def callback(correlation_id, text, origin) -> None
PersistCallback = Callable[[str, str, str], Awaitable[None]]


def _default_data_dir() -> str:
    return str(Path.home() / ".agentrelay")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class EngineConfig:
    """Session engine configuration."""

    # Root of the log layout: <data_dir>/agent/<provider>/<workspace>/stream.log
    data_dir: str = field(default_factory=_default_data_dir)

    # Try the SDK-backed stream transport before spawning a CLI process.
    prefer_stream_transport: bool = True

    # Time stop() waits after the termination signal before killing.
    kill_grace_seconds: float = 5.0

    # Default bound for the log tail query.
    tail_max_bytes: int = 16384

    # Logging
    log_level: str = "INFO"

    # Optional best-effort persistence of output fragments for sessions
    # that carry a correlation id.
    persist_callback: PersistCallback | None = field(default=None, repr=False)

    # Optional subscriber for output/error/complete events.
    event_sink: SessionEventSink | None = field(default=None, repr=False)

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load configuration from AGENTRELAY_* environment variables."""
        relay_vars = {
            k: v for k, v in os.environ.items() if k.startswith("AGENTRELAY_")
        }
        if relay_vars:
            logger.info(
                "EngineConfig.from_env: AGENTRELAY_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(relay_vars.items())),
            )
        else:
            logger.debug(
                "EngineConfig.from_env: no AGENTRELAY_* env vars set, using defaults"
            )

        config = cls(
            data_dir=os.getenv("AGENTRELAY_DATA_DIR") or _default_data_dir(),
            prefer_stream_transport=_env_flag(
                "AGENTRELAY_PREFER_SDK", cls.prefer_stream_transport
            ),
            kill_grace_seconds=float(os.getenv(
                "AGENTRELAY_KILL_GRACE", str(cls.kill_grace_seconds)
            )),
            tail_max_bytes=int(os.getenv(
                "AGENTRELAY_TAIL_BYTES", str(cls.tail_max_bytes)
            )),
            log_level=os.getenv("AGENTRELAY_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "EngineConfig.from_env: data_dir=%s prefer_sdk=%s log_level=%s",
            config.data_dir, config.prefer_stream_transport, config.log_level,
        )
        return config
