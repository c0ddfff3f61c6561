"""Exception hierarchy for the session engine.

Only failures that happen before a session is registered are raised.
Everything after registration is reported through events and return
values.
"""
from __future__ import annotations


class OrchestrationError(Exception):
    """Base exception for all engine errors."""


class InvalidSessionRequestError(OrchestrationError, ValueError):
    """A start request failed validation."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid argument: {reason}")


class ProviderNotFoundError(OrchestrationError):
    """Requested provider is not registered."""
    def __init__(self, provider_id: str, available: list[str]):
        self.provider_id = provider_id
        self.available = available
        avail_str = ", ".join(available) if available else "none"
        super().__init__(
            f"Provider '{provider_id}' is not registered. "
            f"Available providers: {avail_str}"
        )


class TransportUnavailableError(OrchestrationError):
    """A transport cannot be used in this environment.

    Not a failure: the orchestrator moves on to the next transport.
    """
    def __init__(self, transport: str, reason: str):
        self.transport = transport
        self.reason = reason
        super().__init__(f"Transport '{transport}' unavailable: {reason}")


class SessionLaunchError(OrchestrationError):
    """Failed to acquire a transport for a session."""
    def __init__(self, key: object, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to start session {key}: {reason}")
