"""
Fixed-window rate limiting per session.

Window state lives in a ``BoundedWindowCache`` owned by whoever builds the
limiter, not in a module-level map. The cache holds at most
``max_entries`` sessions (least recently seen evicted first) and drops
windows that have already expired whenever it is touched.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from sales_agent.config import AppConfig, settings
from sales_agent.exceptions import RateLimitExceededError
from sales_agent.middleware.base import Middleware, TurnContext

logger = logging.getLogger(__name__)


@dataclass
class Window:
    started_at: float
    count: int = 0


class BoundedWindowCache:
    """LRU of per-key request windows with expiry."""

    def __init__(
        self,
        max_entries: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: "OrderedDict[str, Window]" = OrderedDict()

    def hit(self, key: str) -> int:
        """Count one request for ``key`` and return the count in its window."""
        now = self._clock()
        self._evict_expired(now)

        window = self._windows.get(key)
        if window is None or self._expired(window, now):
            window = Window(started_at=now)
        window.count += 1
        self._windows[key] = window
        self._windows.move_to_end(key)

        while len(self._windows) > self.max_entries:
            evicted, _ = self._windows.popitem(last=False)
            logger.debug("Rate limit window evicted for %s", evicted)
        return window.count

    def get(self, key: str) -> Optional[Window]:
        return self._windows.get(key)

    def _expired(self, window: Window, now: float) -> bool:
        return now - window.started_at > self.window_seconds

    def _evict_expired(self, now: float) -> None:
        # oldest-touched entries first; stop at the first live one
        while self._windows:
            key, window = next(iter(self._windows.items()))
            if not self._expired(window, now):
                break
            del self._windows[key]

    def __len__(self) -> int:
        return len(self._windows)

    def __contains__(self, key: object) -> bool:
        return key in self._windows


class RateLimiter(Middleware):
    """Rejects a turn once a session exceeds ``max_requests`` in a window."""

    def __init__(
        self,
        max_requests: int = 30,
        cache: Optional[BoundedWindowCache] = None,
        window_seconds: float = 60,
        max_tracked_sessions: int = 10000,
    ) -> None:
        self.max_requests = max_requests
        self.cache = cache if cache is not None else BoundedWindowCache(
            max_tracked_sessions, window_seconds
        )

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "RateLimiter":
        config = config or settings
        limits = config.rate_limit
        return cls(
            max_requests=limits.max_requests,
            window_seconds=limits.window_seconds,
            max_tracked_sessions=limits.max_tracked_sessions,
        )

    async def before(self, ctx: TurnContext) -> None:
        count = self.cache.hit(ctx.session_id)
        if count > self.max_requests:
            logger.warning("Rate limit exceeded for session %s (%d requests)", ctx.session_id, count)
            raise RateLimitExceededError("Rate limit exceeded for this session.")
