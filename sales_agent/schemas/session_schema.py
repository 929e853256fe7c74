"""Session aggregate: turn history, cart and customer snapshot.

Stored sessions are never trusted. ``Session.from_store`` is the single
validated deserialization step: wrong shapes are normalized (non-list
history or cart items become empty lists, malformed entries are dropped)
instead of being sniffed ad hoc throughout the session manager.
"""

import logging
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from sales_agent.utils import utc_now_iso

logger = logging.getLogger(__name__)


def make_line_id(product_id: Any, color: Optional[str], size: Optional[str]) -> str:
    """Composite cart line key; identical product+variant merges into one line."""
    return f"{product_id}:{color or 'default'}:{size or 'default'}"


def _keep_valid(model: type[BaseModel], entries: Any) -> list[Any]:
    if not isinstance(entries, list):
        return []
    kept = []
    for entry in entries:
        try:
            kept.append(model.model_validate(entry))
        except ValidationError:
            logger.debug("Dropping malformed %s from stored session", model.__name__)
    return kept


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TurnRecord(BaseModel):
    """A single message in the conversation history."""

    role: Role
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=utc_now_iso)

    model_config = ConfigDict(frozen=True)


class CartItem(BaseModel):
    """One cart line, keyed by product and variant."""

    model_config = ConfigDict(populate_by_name=True)

    line_id: str = Field(validation_alias=AliasChoices("line_id", "lineId"))
    product_id: Union[int, str] = Field(validation_alias=AliasChoices("product_id", "productId"))
    name: str
    price: float = 0.0
    quantity: int = Field(ge=1)
    color: Optional[str] = None
    size: Optional[str] = None
    category: Optional[str] = None


class Cart(BaseModel):
    items: list[CartItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _coerce_items(cls, value: Any) -> list[Any]:
        return _keep_valid(CartItem, value)

    def find_line(self, line_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.line_id == line_id:
                return item
        return None

    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def subtotal(self) -> float:
        return sum(item.price * item.quantity for item in self.items)

    def summary(self) -> str:
        """Short ``name xN`` listing used in reply prompts."""
        if not self.items:
            return "empty"
        return ", ".join(f"{item.name} x{item.quantity}" for item in self.items)

    def as_dicts(self) -> list[dict[str, Any]]:
        return [item.model_dump() for item in self.items]


class SessionSnapshot(BaseModel):
    """Subset of the session returned to callers in the response envelope."""

    cart: dict[str, Any]
    customer: Optional[dict[str, Any]] = None
    context: dict[str, Any] = Field(default_factory=dict)


class Session(BaseModel):
    """Per-conversation state persisted between turns."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    customer: Optional[dict[str, Any]] = None
    history: list[TurnRecord] = Field(default_factory=list)
    cart: Cart = Field(default_factory=Cart)
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(
        default_factory=utc_now_iso,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )
    last_activity: str = Field(
        default_factory=utc_now_iso,
        validation_alias=AliasChoices("last_activity", "lastActivity"),
    )

    @field_validator("history", mode="before")
    @classmethod
    def _coerce_history(cls, value: Any) -> list[Any]:
        return _keep_valid(TurnRecord, value)

    @field_validator("cart", mode="before")
    @classmethod
    def _coerce_cart(cls, value: Any) -> Any:
        if isinstance(value, Cart):
            return value
        if not isinstance(value, dict):
            return {"items": []}
        return {"items": value.get("items")}

    @field_validator("customer", mode="before")
    @classmethod
    def _coerce_customer(cls, value: Any) -> Optional[dict[str, Any]]:
        return value if isinstance(value, dict) and value else None

    @field_validator("context", mode="before")
    @classmethod
    def _coerce_context(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("created_at", "last_activity", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> str:
        return value if isinstance(value, str) and value else utc_now_iso()

    @classmethod
    def new(cls, session_id: str) -> "Session":
        now = utc_now_iso()
        return cls(id=session_id, created_at=now, last_activity=now)

    @classmethod
    def from_store(cls, session_id: str, raw: Any) -> "Session":
        """Build a session from whatever the store returned.

        None, non-mappings and records that still fail validation after
        normalization all yield a fresh session for ``session_id``.
        """
        if not isinstance(raw, dict):
            return cls.new(session_id)
        data = dict(raw)
        if not isinstance(data.get("id"), str) or not data.get("id"):
            data["id"] = session_id
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            logger.warning(
                "Stored session %s failed validation, starting fresh: %s",
                session_id, exc.error_count(),
            )
            return cls.new(session_id)

    def to_store(self) -> dict[str, Any]:
        """JSON-compatible representation handed to the session store."""
        return self.model_dump(mode="json")

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            cart=self.cart.model_dump(mode="json"),
            customer=self.customer,
            context=dict(self.context),
        )
