"""Per-turn pipeline values: intent, action result, receipt verification, envelope."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from sales_agent.schemas.session_schema import SessionSnapshot

UNCLEAR_INTENT = "unclear"
ERROR_INTENT = "error"


class IntentResult(BaseModel):
    """Classified intent with extracted entities."""

    intent: str = UNCLEAR_INTENT
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    entities: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def unclear(cls) -> "IntentResult":
        return cls(intent=UNCLEAR_INTENT, confidence=0.0, entities={})


class ActionFlags(BaseModel):
    added_to_cart: bool = False
    removed_from_cart: bool = False
    proceed_to_checkout: bool = False


class ActionResult(BaseModel):
    """Outcome of dispatching an intent. ``error`` is set instead of raising."""

    actions: ActionFlags = Field(default_factory=ActionFlags)
    data: Optional[Any] = None
    error: Optional[str] = None


class ReceiptDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"


class ReceiptValidity(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNCLEAR = "unclear"


class ReceiptAnalysis(BaseModel):
    """What the vision model said about a receipt image."""

    confidence: float = Field(ge=0.0, le=1.0)
    validity: ReceiptValidity = ReceiptValidity.UNCLEAR
    reason: str = ""
    raw: Optional[str] = None


class ReceiptVerification(BaseModel):
    """Thresholded decision for one receipt submission. Not persisted by the core."""

    decision: ReceiptDecision
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    reason: str = ""
    validity: ReceiptValidity = ReceiptValidity.UNCLEAR


class ChatResponse(BaseModel):
    """Envelope returned from every turn, including failed ones."""

    text: str
    intent: str
    confidence: float = 0.0
    entities: dict[str, Any] = Field(default_factory=dict)
    actions: dict[str, bool] = Field(default_factory=dict)
    data: Optional[Any] = None
    session: Optional[SessionSnapshot] = None
    error: Optional[str] = None
