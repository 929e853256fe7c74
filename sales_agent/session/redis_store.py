"""Redis-backed session store (``redis.asyncio``), values stored as JSON."""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from sales_agent.session.base import SessionStore

logger = logging.getLogger(__name__)


class RedisSessionStore(SessionStore):
    """
    Networked session store.

    Keys are ``{prefix}{session_id}``. ``save`` writes with ``EX`` set to the
    default TTL; the session manager then refreshes it with ``update_ttl``.
    The connection is opened lazily on first use.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        prefix: str = "sales-agent:session:",
        default_ttl: int = 3600,
        client: Optional[Any] = None,
    ) -> None:
        self.url = url
        self.prefix = prefix
        self.default_ttl = default_ttl
        self._client = client

    async def get(self, session_id: str) -> Optional[Any]:
        client = self._connect()
        raw = await client.get(self._key(session_id))
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable session payload for %s", session_id)
            return None

    async def save(self, session_id: str, session: dict[str, Any]) -> None:
        client = self._connect()
        await client.set(self._key(session_id), json.dumps(session), ex=self.default_ttl)

    async def delete(self, session_id: str) -> None:
        client = self._connect()
        await client.delete(self._key(session_id))

    async def update_ttl(self, session_id: str, ttl_seconds: int) -> None:
        client = self._connect()
        await client.expire(self._key(session_id), ttl_seconds)

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        logger.info("Redis session store connection closed")

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    def _connect(self) -> Any:
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
            logger.info("Redis session store connected to %s", self.url)
        return self._client
