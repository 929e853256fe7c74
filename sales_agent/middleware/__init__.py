from sales_agent.middleware.base import HOOK_NAMES, Middleware, TurnContext
from sales_agent.middleware.error_handler import ErrorHandler
from sales_agent.middleware.logger import RequestLogger
from sales_agent.middleware.rate_limiter import BoundedWindowCache, RateLimiter

__all__ = [
    "HOOK_NAMES",
    "Middleware",
    "TurnContext",
    "ErrorHandler",
    "RequestLogger",
    "BoundedWindowCache",
    "RateLimiter",
]
