"""Session persistence interface: opaque key-value storage with expiry."""

from abc import ABC, abstractmethod
from typing import Any, Optional


class SessionStore(ABC):
    """Backend for session state between turns."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Any]:
        """Return the stored value, or None if absent or expired."""

    @abstractmethod
    async def save(self, session_id: str, session: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        ...

    @abstractmethod
    async def update_ttl(self, session_id: str, ttl_seconds: int) -> None:
        """Reset the expiry of ``session_id`` to ``ttl_seconds`` from now."""

    async def close(self) -> None:
        """Release connections. No-op by default."""
