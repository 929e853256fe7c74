from sales_agent.schemas.conversation_schema import (
    ActionFlags,
    ActionResult,
    ChatResponse,
    IntentResult,
    ReceiptAnalysis,
    ReceiptDecision,
    ReceiptValidity,
    ReceiptVerification,
)
from sales_agent.schemas.session_schema import (
    Cart,
    CartItem,
    Role,
    Session,
    SessionSnapshot,
    TurnRecord,
)

__all__ = [
    "ActionFlags",
    "ActionResult",
    "ChatResponse",
    "IntentResult",
    "ReceiptAnalysis",
    "ReceiptDecision",
    "ReceiptValidity",
    "ReceiptVerification",
    "Cart",
    "CartItem",
    "Role",
    "Session",
    "SessionSnapshot",
    "TurnRecord",
]
