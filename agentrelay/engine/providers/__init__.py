"""Agent providers: CLI invocation, availability probe, transport preference."""
from .base import Provider
from .registry import ProviderRegistry, build_provider_registry
from .claude_provider import ClaudeProvider
from .codex_provider import CodexProvider

__all__ = [
    "Provider",
    "ProviderRegistry",
    "build_provider_registry",
    "ClaudeProvider",
    "CodexProvider",
]
