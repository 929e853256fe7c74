"""
Turn hooks.

A middleware may define any of three coroutines, each taking the turn's
``TurnContext``:

- ``before(ctx)``: runs before the session is loaded; raising aborts the turn
- ``after(ctx)``: runs once the reply has been persisted
- ``error(ctx)``: runs after a failed turn has been persisted with a fallback

The orchestrator calls whichever handlers exist, in registration order,
awaiting each before the next. Objects that do not subclass ``Middleware``
work too as long as they expose the same coroutine names.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Optional

from sales_agent.schemas.conversation_schema import ChatResponse

HOOK_NAMES = ("before", "after", "error")


@dataclass
class TurnContext:
    """Mutable per-turn state shared with every hook."""

    session_id: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.monotonic)
    response: Optional[ChatResponse] = None
    error: Optional[BaseException] = None

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class Middleware:
    """Base class with no-op hooks. Override the ones you need."""

    async def before(self, ctx: TurnContext) -> None:
        return None

    async def after(self, ctx: TurnContext) -> None:
        return None

    async def error(self, ctx: TurnContext) -> None:
        return None
