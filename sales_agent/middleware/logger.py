"""Structured request logging hook."""

import json
import logging
from typing import Optional

from sales_agent.middleware.base import Middleware, TurnContext
from sales_agent.utils import utc_now_iso

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class RequestLogger(Middleware):
    """
    Emits one JSON line per turn event: ``request.start``,
    ``request.success`` or ``request.error``.

    Events below ``level`` are dropped before they reach ``logging``.
    """

    def __init__(self, level: str = "info", logger: Optional[logging.Logger] = None) -> None:
        self.level = _LEVELS.get(str(level).lower(), logging.INFO)
        self._logger = logger or logging.getLogger("sales_agent.requests")

    async def before(self, ctx: TurnContext) -> None:
        self._log(logging.INFO, "request.start", session_id=ctx.session_id, message=ctx.message)

    async def after(self, ctx: TurnContext) -> None:
        self._log(
            logging.INFO,
            "request.success",
            session_id=ctx.session_id,
            intent=ctx.response.intent if ctx.response else None,
            duration_ms=ctx.duration_ms,
        )

    async def error(self, ctx: TurnContext) -> None:
        self._log(
            logging.ERROR,
            "request.error",
            session_id=ctx.session_id,
            error=str(ctx.error) if ctx.error else None,
            duration_ms=ctx.duration_ms,
        )

    def _log(self, level: int, event: str, **payload) -> None:
        if level < self.level:
            return
        record = {
            "level": logging.getLevelName(level).lower(),
            "event": event,
            "timestamp": utc_now_iso(),
            **payload,
        }
        self._logger.log(level, json.dumps(record, default=str))
