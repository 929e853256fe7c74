"""
Turn orchestration for the conversational sales agent.

One call to ``SalesAgent.chat`` is one turn:

    before hooks -> load session -> append user turn -> classify intent
    -> dispatch action -> compose reply -> append assistant turn
    -> save session -> after hooks -> envelope

``chat`` never raises. Any exception, including one from a ``before`` hook,
switches the turn to the fallback path: a generic assistant turn carrying
the error is appended, the session is saved anyway, error hooks run and a
degraded envelope with ``intent="error"`` is returned.

Turns on the same session id are serialized inside this process by a
``SessionLockRegistry``. Separate processes sharing one store can still
interleave; the last save wins.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

from sales_agent.adapters.base import CommerceAdapters
from sales_agent.config import AppConfig, settings
from sales_agent.conversation.action_dispatcher import ActionDispatcher
from sales_agent.conversation.intent_classifier import IntentClassifier
from sales_agent.conversation.reply_composer import ReplyComposer
from sales_agent.conversation.session_manager import SessionManager
from sales_agent.conversation.state_machine import TurnStateMachine, TurnTrigger
from sales_agent.logging_context import get_turn_logger, set_session_id
from sales_agent.middleware.base import HOOK_NAMES, TurnContext
from sales_agent.schemas.conversation_schema import (
    ERROR_INTENT,
    ActionResult,
    ChatResponse,
    IntentResult,
)
from sales_agent.schemas.session_schema import Role, Session, TurnRecord
from sales_agent.session.base import SessionStore
from sales_agent.session.memory import MemorySessionStore

logger = get_turn_logger(__name__)

FALLBACK_TEXT = "I am having trouble processing that request right now. Please try again."


class SessionLockRegistry:
    """
    One ``asyncio.Lock`` per session id with an active turn.

    Entries are created on demand and dropped as soon as no turn holds or
    waits on them, so the registry only ever tracks in-flight sessions.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                del self._locks[session_id]

    def is_locked(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class SalesAgent:
    """
    Conversational sales agent.

    Args:
        llm: Model backend. Required.
        adapters: Commerce collaborators; any may be absent.
        session_store: Defaults to an in-memory store with the configured TTL.
        config: Defaults to the ``settings`` singleton.
        middleware: Hook objects run in order around every turn.
        session_locks: Share one registry between agents on the same store.
    """

    def __init__(
        self,
        llm: Any,
        adapters: Optional[CommerceAdapters] = None,
        session_store: Optional[SessionStore] = None,
        config: Optional[AppConfig] = None,
        middleware: Optional[Sequence[Any]] = None,
        session_locks: Optional[SessionLockRegistry] = None,
    ) -> None:
        if llm is None:
            raise ValueError("SalesAgent requires an llm provider.")

        self.config = config or settings
        self.llm = llm
        self.adapters = adapters or CommerceAdapters()
        self.session_store = session_store if session_store is not None else MemorySessionStore(
            default_ttl=self.config.conversation.session_ttl_seconds
        )
        self.middleware = list(middleware or [])
        self.session_locks = session_locks if session_locks is not None else SessionLockRegistry()

        self.session_manager = SessionManager(self.session_store, self.config)
        self.intent_classifier = IntentClassifier(llm, self.config)
        self.action_dispatcher = ActionDispatcher(self.adapters, llm, self.config)
        self.reply_composer = ReplyComposer(llm, self.config)

    @classmethod
    def from_config(
        cls,
        config: Optional[AppConfig] = None,
        adapters: Optional[CommerceAdapters] = None,
        llm: Any = None,
        middleware: Optional[Sequence[Any]] = None,
    ) -> "SalesAgent":
        """Build an agent whose backend and session store come from configuration."""
        from sales_agent.llm import build_llm_provider
        from sales_agent.middleware import RateLimiter, RequestLogger
        from sales_agent.session import build_session_store

        config = config or settings
        if middleware is None:
            middleware = [RequestLogger(config.log_level), RateLimiter.from_config(config)]
        return cls(
            llm=llm if llm is not None else build_llm_provider(config),
            adapters=adapters,
            session_store=build_session_store(config),
            config=config,
            middleware=middleware,
        )

    async def chat(
        self,
        session_id: str,
        message: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ChatResponse:
        """Process one turn and return its envelope. Never raises."""
        metadata = dict(metadata or {})
        set_session_id(session_id)
        ctx = TurnContext(session_id=session_id, message=message, metadata=metadata)
        machine = TurnStateMachine()

        async with self.session_locks.hold(session_id):
            session: Optional[Session] = None
            try:
                await self._run_hooks("before", ctx)
                session = await self.session_manager.load(session_id)

                history = list(session.history)
                self.session_manager.append_message(session, Role.USER, message, metadata)

                intent_result = await self.detect_intent(message, history)
                machine.transition(TurnTrigger.INTENT_CLASSIFIED)

                action_result = await self.execute_action(
                    intent_result, session, {**metadata, "message": message}
                )
                machine.transition(TurnTrigger.ACTION_DISPATCHED)

                text = await self.generate_response(message, intent_result, action_result, session)
                machine.transition(TurnTrigger.REPLY_COMPOSED)

                self.session_manager.append_message(
                    session,
                    Role.ASSISTANT,
                    text,
                    {"intent": intent_result.intent, "confidence": intent_result.confidence},
                )
                await self.session_manager.save(session_id, session)
                machine.transition(TurnTrigger.SESSION_SAVED)

                response = ChatResponse(
                    text=text,
                    intent=intent_result.intent,
                    confidence=intent_result.confidence,
                    entities=intent_result.entities,
                    actions=action_result.actions.model_dump(),
                    data=action_result.data,
                    session=session.snapshot(),
                )
                ctx.response = response
                await self._run_hooks("after", ctx)
                machine.transition(TurnTrigger.RESPONSE_SENT)
                return response
            except Exception as exc:
                return await self._fail_turn(ctx, machine, session, exc)
            finally:
                logger.debug("Turn trace for %s: %s", session_id, machine.get_state_trace())

    async def process_message(self, payload: dict[str, Any]) -> ChatResponse:
        """
        Entry point for ``{session_id | user_id, message, metadata}`` payloads.

        Raises:
            ValueError: If no id is given or ``message`` is not a non-empty string.
        """
        session_id = (
            payload.get("session_id") or payload.get("sessionId")
            or payload.get("user_id") or payload.get("userId")
        )
        if not session_id:
            raise ValueError("session_id or user_id is required.")
        message = payload.get("message")
        if not isinstance(message, str) or not message.strip():
            raise ValueError("message must be a non-empty string.")
        metadata = payload.get("metadata")
        return await self.chat(str(session_id), message, metadata if isinstance(metadata, dict) else {})

    async def detect_intent(
        self, message: str, history: Sequence[TurnRecord] = ()
    ) -> IntentResult:
        return await self.intent_classifier.classify(message, history)

    async def execute_action(
        self,
        intent_result: IntentResult,
        session: Session,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ActionResult:
        return await self.action_dispatcher.execute(intent_result, session, metadata)

    async def generate_response(
        self,
        message: str,
        intent_result: IntentResult,
        action_result: ActionResult,
        session: Session,
    ) -> str:
        return await self.reply_composer.compose(message, intent_result, action_result, session)

    async def close(self) -> None:
        """Release backend and store connections."""
        close = getattr(self.llm, "close", None)
        if callable(close):
            await close()
        await self.session_store.close()

    async def _fail_turn(
        self,
        ctx: TurnContext,
        machine: TurnStateMachine,
        session: Optional[Session],
        exc: Exception,
    ) -> ChatResponse:
        logger.exception("Turn failed for session %s", ctx.session_id)
        machine.fail()
        error_text = str(exc) or exc.__class__.__name__

        if session is None:
            session = await self._load_for_fallback(ctx.session_id)
        self.session_manager.append_message(
            session, Role.ASSISTANT, FALLBACK_TEXT, {"error": error_text}
        )
        try:
            await self.session_manager.save(ctx.session_id, session)
            machine.transition(TurnTrigger.FALLBACK_SAVED)
        except Exception as save_exc:
            logger.error("Could not persist fallback turn for %s: %s", ctx.session_id, save_exc)

        failure = ChatResponse(
            text=FALLBACK_TEXT,
            intent=ERROR_INTENT,
            confidence=0.0,
            entities={},
            actions={},
            data=None,
            error=error_text,
        )
        ctx.error = exc
        ctx.response = failure
        for middleware in self.middleware:
            handler = getattr(middleware, "error", None)
            if not callable(handler):
                continue
            try:
                await handler(ctx)
            except Exception:
                logger.exception("Error hook %s failed", type(middleware).__name__)

        machine.transition(TurnTrigger.RESPONSE_SENT)
        return failure

    async def _load_for_fallback(self, session_id: str) -> Session:
        try:
            return await self.session_manager.load(session_id)
        except Exception as exc:
            logger.warning("Session %s unavailable during fallback: %s", session_id, exc)
            return Session.new(session_id)

    async def _run_hooks(self, hook: str, ctx: TurnContext) -> None:
        if hook not in HOOK_NAMES:
            raise ValueError(f"Unknown hook: {hook}")
        for middleware in self.middleware:
            handler = getattr(middleware, hook, None)
            if callable(handler):
                await handler(ctx)
