"""Session registry: the single map of active sessions.

Every session-creating path registers here, so workspace exclusivity
is enforced in one place: registering a session evicts whatever held
the same key and whatever held the same workspace under another
provider.
"""
from __future__ import annotations

import logging

from .models import SessionHandle, SessionKey

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps SessionKey -> active SessionHandle. No method blocks."""

    def __init__(self) -> None:
        self._sessions: dict[SessionKey, SessionHandle] = {}

    def register(self, key: SessionKey, handle: SessionHandle) -> list[SessionHandle]:
        """Insert ``handle`` after evicting conflicting sessions.

        Returns the evicted handles so the caller can retire them.
        """
        evicted = self.evict(key)
        self._sessions[key] = handle
        logger.debug("Registered session %s (active=%d)", key, len(self._sessions))
        return evicted

    def evict(self, key: SessionKey) -> list[SessionHandle]:
        """Remove and cancel the handle at ``key`` and any sharing its workspace.

        Cancellation failures are logged and ignored; a misbehaving
        predecessor must never block a new session.
        """
        conflicting = [
            k for k in self._sessions
            if k == key or k.workspace_id == key.workspace_id
        ]
        evicted: list[SessionHandle] = []
        for k in conflicting:
            handle = self._sessions.pop(k)
            evicted.append(handle)
            try:
                if not handle.transport.cancel():
                    logger.warning(
                        "Evicted session %s did not acknowledge cancel", k,
                    )
            except Exception as exc:
                logger.warning(
                    "Cancel failed while evicting session %s: %s", k, exc,
                )
            logger.info("Evicted session %s for %s", k, key)
        return evicted

    def lookup(self, key: SessionKey) -> SessionHandle | None:
        return self._sessions.get(key)

    def remove(
        self, key: SessionKey, handle: SessionHandle | None = None,
    ) -> SessionHandle | None:
        """Remove the entry at ``key``.

        When ``handle`` is given, only remove if it is still the entry
        registered there (a successor may already own the slot).
        """
        current = self._sessions.get(key)
        if current is None:
            return None
        if handle is not None and current is not handle:
            return None
        return self._sessions.pop(key)

    def keys(self) -> list[SessionKey]:
        return list(self._sessions.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
