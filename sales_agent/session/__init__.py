from typing import Optional

from sales_agent.config import AppConfig, settings
from sales_agent.session.base import SessionStore
from sales_agent.session.memory import MemorySessionStore
from sales_agent.session.redis_store import RedisSessionStore


def build_session_store(config: Optional[AppConfig] = None) -> SessionStore:
    """Create the session store selected by ``SESSION_BACKEND``."""
    config = config or settings
    ttl = config.conversation.session_ttl_seconds
    if config.session_store.backend == "redis":
        return RedisSessionStore(
            url=config.session_store.redis_url,
            prefix=config.session_store.key_prefix,
            default_ttl=ttl,
        )
    return MemorySessionStore(default_ttl=ttl)


__all__ = [
    "SessionStore",
    "MemorySessionStore",
    "RedisSessionStore",
    "build_session_store",
]
