"""Dynamic prompt construction for classification, replies and receipt checks."""

import json
from typing import Any, Optional, Sequence

from sales_agent.prompts.system_prompts import (
    CLASSIFIER_ROLE,
    ENTITY_SLOTS,
    RECEIPT_RESPONSE_RULES,
    REPLY_RULES,
)
from sales_agent.schemas.session_schema import TurnRecord


def build_history_block(history: Sequence[TurnRecord], window: int) -> str:
    """Role-labelled transcript of the last ``window`` turns, or empty."""
    if not history or window <= 0:
        return ""
    lines = [f"{turn.role.value}: {turn.text}" for turn in list(history)[-window:]]
    return "Recent conversation:\n" + "\n".join(lines) + "\n\n"


def build_intent_prompt(
    message: str,
    history: Sequence[TurnRecord],
    intents: Sequence[str],
    window: int = 6,
) -> str:
    """Prompt asking the model for ``{intent, confidence, entities}`` as JSON."""
    parts = [build_history_block(history, window) + CLASSIFIER_ROLE]
    parts.append(f'\nMessage: "{message}"')
    parts.append("\nAllowed intents:")
    parts.extend(f"- {intent}" for intent in intents)
    parts.append("\nExtract entities when present:")
    parts.extend(f"- {slot}" for slot in ENTITY_SLOTS)

    example = {
        "intent": "one_allowed_intent",
        "confidence": 0.0,
        "entities": {slot: None for slot in ENTITY_SLOTS},
    }
    parts.append("\nRespond with JSON only:")
    parts.append(json.dumps(example, indent=2))
    return "\n".join(parts)


def build_reply_prompt(
    *,
    system_prompt: str,
    business_name: str,
    business_description: str,
    currency: str,
    message: str,
    intent: str,
    confidence: float,
    entities: dict[str, Any],
    cart_summary: str,
    action_data: Any,
) -> str:
    """Prompt for the best-effort natural-language reply."""
    return (
        f"{system_prompt}\n\n"
        f"Business: {business_name}\n"
        f"Description: {business_description}\n"
        f"Currency: {currency}\n\n"
        f'Customer message: "{message}"\n'
        f"Intent: {intent}\n"
        f"Confidence: {confidence}\n"
        f"Entities: {json.dumps(entities or {}, default=str)}\n"
        f"Cart: {cart_summary}\n"
        f"Action result: {json.dumps(action_data or {}, indent=2, default=str)}\n\n"
        f"{REPLY_RULES}"
    )


def build_receipt_prompt(
    *,
    instructions: str,
    order_id: Any,
    order: Optional[dict[str, Any]],
    payment_id: Optional[str],
    currency: str,
) -> str:
    """Vision prompt giving the model the order context the receipt must match."""
    order = order or {}
    total = (order.get("totals") or {}).get("total")
    expected_total = f"{total} {currency}" if total is not None else "unknown"
    return (
        f"{instructions}\n\n"
        "Order context:\n"
        f"- order_id: {order_id}\n"
        f"- order_number: {order.get('order_number') or 'unknown'}\n"
        f"- expected_total: {expected_total}\n"
        f"- payment_id: {payment_id or order.get('payment_id') or 'unknown'}\n\n"
        f"{RECEIPT_RESPONSE_RULES}"
    )
