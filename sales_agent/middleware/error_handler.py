"""Forwards failed turns to an application callback."""

import inspect
from typing import Any, Callable, Optional

from sales_agent.middleware.base import Middleware, TurnContext


class ErrorHandler(Middleware):
    """Calls ``on_error(error, ctx)`` for every failed turn. Sync or async callbacks."""

    def __init__(self, on_error: Optional[Callable[[BaseException, TurnContext], Any]] = None) -> None:
        self.on_error = on_error

    async def error(self, ctx: TurnContext) -> None:
        if self.on_error is None:
            return
        result = self.on_error(ctx.error, ctx)
        if inspect.isawaitable(result):
            await result
