"""
Finite state machine for the lifecycle of a single chat turn.

A turn follows one of two deterministic paths:

    received -> classified -> dispatched -> composed -> persisted -> responded
    received -> ... -> failed -> fallback_persisted -> responded

Failure is allowed from every non-terminal pipeline state. The orchestrator
drives one machine per turn and logs its trace, so a degraded reply can be
traced back to the stage that broke.

Usage:
    sm = TurnStateMachine()
    sm.transition(TurnTrigger.INTENT_CLASSIFIED)
    assert sm.current_state == TurnState.CLASSIFIED
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    """All states a turn can be in."""
    RECEIVED = "received"
    CLASSIFIED = "classified"
    DISPATCHED = "dispatched"
    COMPOSED = "composed"
    PERSISTED = "persisted"
    RESPONDED = "responded"
    FAILED = "failed"
    FALLBACK_PERSISTED = "fallback_persisted"


class TurnTrigger(str, Enum):
    """Events that move a turn forward."""
    INTENT_CLASSIFIED = "intent_classified"
    ACTION_DISPATCHED = "action_dispatched"
    REPLY_COMPOSED = "reply_composed"
    SESSION_SAVED = "session_saved"
    RESPONSE_SENT = "response_sent"
    ERROR_RAISED = "error_raised"
    FALLBACK_SAVED = "fallback_saved"


@dataclass
class Transition:
    """A single valid state transition."""
    from_state: TurnState
    to_state: TurnState
    trigger: TurnTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: TurnState
    entered_at: datetime
    trigger: Optional[TurnTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


_FAILABLE = (
    TurnState.RECEIVED,
    TurnState.CLASSIFIED,
    TurnState.DISPATCHED,
    TurnState.COMPOSED,
    TurnState.PERSISTED,
)


class TurnStateMachine:
    """
    Deterministic state machine for one turn.

    Every transition must be explicitly defined; anything else raises
    ``InvalidTransitionError`` listing the triggers that are allowed.
    """

    TRANSITIONS: list[Transition] = [
        # --- Happy path ---
        Transition(TurnState.RECEIVED, TurnState.CLASSIFIED, TurnTrigger.INTENT_CLASSIFIED),
        Transition(TurnState.CLASSIFIED, TurnState.DISPATCHED, TurnTrigger.ACTION_DISPATCHED),
        Transition(TurnState.DISPATCHED, TurnState.COMPOSED, TurnTrigger.REPLY_COMPOSED),
        Transition(TurnState.COMPOSED, TurnState.PERSISTED, TurnTrigger.SESSION_SAVED),
        Transition(TurnState.PERSISTED, TurnState.RESPONDED, TurnTrigger.RESPONSE_SENT),

        # --- Failure ---
        *[Transition(state, TurnState.FAILED, TurnTrigger.ERROR_RAISED) for state in _FAILABLE],
        Transition(TurnState.FAILED, TurnState.FALLBACK_PERSISTED, TurnTrigger.FALLBACK_SAVED),
        Transition(TurnState.FALLBACK_PERSISTED, TurnState.RESPONDED, TurnTrigger.RESPONSE_SENT),
        # the store itself may be what failed
        Transition(TurnState.FAILED, TurnState.RESPONDED, TurnTrigger.RESPONSE_SENT),
    ]

    def __init__(self) -> None:
        self._current_state = TurnState.RECEIVED
        self._history: list[StateEntry] = [
            StateEntry(state=TurnState.RECEIVED, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_state(self) -> TurnState:
        return self._current_state

    def transition(self, trigger: TurnTrigger) -> TurnState:
        """
        Execute a state transition.

        Args:
            trigger: The event triggering the transition.

        Returns:
            The new turn state.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "Turn transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def fail(self) -> TurnState:
        """Move to ``failed`` unless the turn already failed or finished."""
        if self._current_state in _FAILABLE:
            return self.transition(TurnTrigger.ERROR_RAISED)
        return self._current_state

    def get_valid_triggers(self) -> list[TurnTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_state == TurnState.RESPONDED

    @property
    def failed(self) -> bool:
        return any(entry.state == TurnState.FAILED for entry in self._history)
