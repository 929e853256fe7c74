"""
Session lifecycle: load with normalization, bounded history, persistence with expiry.

The manager owns the persistence boundary. Whatever the store returns goes
through ``Session.from_store``; whatever is saved is re-trimmed first and
always followed by a TTL refresh, regardless of backend.
"""

import logging
from typing import Any, Optional, Union

from sales_agent.config import AppConfig, settings
from sales_agent.schemas.session_schema import Cart, Role, Session, TurnRecord
from sales_agent.session.base import SessionStore
from sales_agent.utils import utc_now_iso

logger = logging.getLogger(__name__)


class SessionManager:
    """Loads, mutates and saves sessions against a ``SessionStore``."""

    def __init__(self, store: SessionStore, config: Optional[AppConfig] = None) -> None:
        self.store = store
        config = config or settings
        self.max_history_length = config.conversation.max_history_length
        self.session_ttl = config.conversation.session_ttl_seconds

    async def load(self, session_id: str) -> Session:
        """Return the stored session, or a fresh one. Never None."""
        raw = await self.store.get(session_id)
        if raw is None:
            logger.debug("Starting new session %s", session_id)
        session = Session.from_store(session_id, raw)
        self._trim_history(session)
        return session

    def append_message(
        self,
        session: Session,
        role: Union[Role, str],
        text: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Session:
        session.history.append(
            TurnRecord(role=Role(role), text=text, metadata=dict(metadata or {}))
        )
        self._trim_history(session)
        self.touch(session)
        return session

    async def save(self, session_id: str, session: Session) -> None:
        self._trim_history(session)
        self.touch(session)
        await self.store.save(session_id, session.to_store())
        await self.store.update_ttl(session_id, self.session_ttl)

    def set_customer(self, session: Session, customer: Optional[dict[str, Any]]) -> None:
        if customer:
            session.customer = dict(customer)
        self.touch(session)

    def set_context(self, session: Session, context: dict[str, Any]) -> None:
        session.context = {**session.context, **(context or {})}
        self.touch(session)

    def clear_cart(self, session: Session) -> None:
        session.cart = Cart()
        self.touch(session)

    @staticmethod
    def touch(session: Session) -> None:
        """Advance ``last_activity``; it never moves backwards."""
        now = utc_now_iso()
        if now > session.last_activity:
            session.last_activity = now

    def _trim_history(self, session: Session) -> None:
        overflow = len(session.history) - self.max_history_length
        if overflow > 0:
            del session.history[:overflow]
