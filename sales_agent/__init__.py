from sales_agent.adapters import CommerceAdapters, create_memory_adapters, create_sql_adapters
from sales_agent.config import AppConfig, load_config, settings
from sales_agent.middleware import ErrorHandler, RateLimiter, RequestLogger, TurnContext
from sales_agent.orchestrator import SalesAgent, SessionLockRegistry
from sales_agent.schemas import ChatResponse
from sales_agent.session import MemorySessionStore, RedisSessionStore

__all__ = [
    "SalesAgent",
    "SessionLockRegistry",
    "TurnContext",
    "ChatResponse",
    "CommerceAdapters",
    "create_memory_adapters",
    "create_sql_adapters",
    "AppConfig",
    "load_config",
    "settings",
    "ErrorHandler",
    "RateLimiter",
    "RequestLogger",
    "MemorySessionStore",
    "RedisSessionStore",
]
