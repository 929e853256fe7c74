from sales_agent.conversation.action_dispatcher import ActionDispatcher
from sales_agent.conversation.intent_classifier import IntentClassifier, normalize_confidence
from sales_agent.conversation.receipt_verification import (
    ReceiptAnalyzer,
    ReceiptDecisionPolicy,
    status_for_decision,
)
from sales_agent.conversation.reply_composer import (
    ReplyComposer,
    fallback_reply,
    format_currency,
)
from sales_agent.conversation.session_manager import SessionManager
from sales_agent.conversation.state_machine import (
    InvalidTransitionError,
    TurnState,
    TurnStateMachine,
    TurnTrigger,
)

__all__ = [
    "ActionDispatcher",
    "IntentClassifier",
    "normalize_confidence",
    "ReceiptAnalyzer",
    "ReceiptDecisionPolicy",
    "status_for_decision",
    "ReplyComposer",
    "fallback_reply",
    "format_currency",
    "SessionManager",
    "TurnStateMachine",
    "TurnState",
    "TurnTrigger",
    "InvalidTransitionError",
]
