"""In-process session store with per-key expiry."""

import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from sales_agent.session.base import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    data: Any
    expires_at: Optional[float] = None


class MemorySessionStore(SessionStore):
    """
    Dictionary-backed store. Values are deep-copied on the way in and out so
    callers never share mutable state with the store.

    Expiry is checked on ``get`` for the key read, and every ``save`` sweeps
    out any other expired keys so abandoned sessions do not accumulate.
    ``default_ttl`` applies to keys that are saved before any ``update_ttl``
    call.
    """

    def __init__(self, default_ttl: Optional[int] = None) -> None:
        self.default_ttl = default_ttl
        self._sessions: dict[str, _Entry] = {}

    async def get(self, session_id: str) -> Optional[Any]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        if entry.expires_at is not None and time.monotonic() > entry.expires_at:
            del self._sessions[session_id]
            logger.debug("Session expired: %s", session_id)
            return None
        return copy.deepcopy(entry.data)

    async def save(self, session_id: str, session: dict[str, Any]) -> None:
        self._purge_expired()
        previous = self._sessions.get(session_id)
        expires_at = (
            previous.expires_at if previous is not None else self._expires_at(self.default_ttl)
        )
        self._sessions[session_id] = _Entry(data=copy.deepcopy(session), expires_at=expires_at)

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def update_ttl(self, session_id: str, ttl_seconds: int) -> None:
        entry = self._sessions.get(session_id)
        if entry is None:
            return
        entry.expires_at = self._expires_at(ttl_seconds)

    def __len__(self) -> int:
        return len(self._sessions)

    def _purge_expired(self) -> None:
        now = time.monotonic()
        expired = [
            key for key, entry in self._sessions.items()
            if entry.expires_at is not None and now > entry.expires_at
        ]
        for key in expired:
            del self._sessions[key]
        if expired:
            logger.debug("Purged %d expired sessions", len(expired))

    @staticmethod
    def _expires_at(ttl_seconds: Optional[int]) -> Optional[float]:
        if not ttl_seconds:
            return None
        return time.monotonic() + ttl_seconds
