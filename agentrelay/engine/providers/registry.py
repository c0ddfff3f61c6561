"""Provider lookup by name, doubling as the installation probe."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from ..errors import ProviderNotFoundError
from .base import Provider
from .claude_provider import ClaudeProvider
from .codex_provider import CodexProvider

if TYPE_CHECKING:
    from ..yaml_config import ProviderConfig

logger = logging.getLogger(__name__)

# Provider classes by the ``type`` used in YAML provider sections.
PROVIDER_TYPES: dict[str, Callable[..., Provider]] = {
    "claude": ClaudeProvider,
    "codex": CodexProvider,
}


class ProviderRegistry:
    """Named agent providers.

    A name is usually the provider type ('claude', 'codex') but YAML
    configs may register the same type under several names, each with
    its own command.
    """

    def __init__(self) -> None:
        self._by_name: dict[str, Provider] = {}

    def register(self, name: str, provider: Provider) -> None:
        if name in self._by_name:
            logger.warning("Replacing provider %s", name)
        self._by_name[name] = provider
        logger.info(
            "Provider %s -> %s (command=%s)", name, provider.name, provider.command,
        )

    def get(self, name: str) -> Provider | None:
        return self._by_name.get(name)

    def get_or_raise(self, name: str) -> Provider:
        """Like get(), but an unknown name raises ProviderNotFoundError."""
        try:
            return self._by_name[name]
        except KeyError:
            raise ProviderNotFoundError(name, self.list_names()) from None

    def list_names(self) -> list[str]:
        return list(self._by_name)

    def list_available(self) -> list[str]:
        """Names whose CLI is on PATH."""
        return [n for n, ok in self.get_availability_report().items() if ok]

    def get_availability_report(self) -> dict[str, bool]:
        """Probe every provider's CLI, keyed by registered name."""
        report: dict[str, bool] = {}
        for name, provider in self._by_name.items():
            report[name] = provider.is_available()
        return report

    def validate(self) -> dict[str, bool]:
        """Probe all providers and log the result once.

        Missing CLIs are only a warning: a launch may still succeed
        through another transport, and a failed launch reports itself.
        """
        report = self.get_availability_report()
        missing = sorted(n for n, ok in report.items() if not ok)
        logger.info(
            "Providers ready: %s",
            ", ".join(sorted(n for n, ok in report.items() if ok)) or "none",
        )
        if missing:
            logger.warning("Provider CLI not found on PATH: %s", ", ".join(missing))
        return report

    def is_provider_available(self, name: str) -> bool:
        provider = self._by_name.get(name)
        return provider is not None and provider.is_available()

    def install_instructions(self, name: str) -> str:
        return self.get_or_raise(name).install_instructions()

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def count(self) -> int:
        return len(self._by_name)


def build_provider_registry(
    provider_configs: dict[str, ProviderConfig] | None = None,
) -> ProviderRegistry:
    """Registry for the configured providers, or claude + codex by default.

    Entries with an unknown ``type`` are logged and skipped.
    """
    registry = ProviderRegistry()
    configs = provider_configs or {}
    if not configs:
        for type_name, cls in PROVIDER_TYPES.items():
            registry.register(type_name, cls())
    for name, cfg in configs.items():
        cls = PROVIDER_TYPES.get(cfg.type)
        if cls is None:
            logger.warning(
                "Skipping provider %s: unknown type %r (known: %s)",
                name, cfg.type, ", ".join(PROVIDER_TYPES),
            )
            continue
        registry.register(name, cls(command=cfg.command))
    registry.validate()
    return registry
