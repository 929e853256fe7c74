"""
Customer-facing reply generation.

Two layers:
1. ``fallback_reply``: deterministic per-intent templates. Pure, and the
   source of truth for what a reply must say.
2. ``ReplyComposer.compose``: asks the model for a friendlier wording of the
   same turn; an empty or failing completion defers to layer 1.

Action errors bypass both and produce a fixed apology without a model call.
"""

import logging
from typing import Any, Optional

from sales_agent.config import AppConfig, settings
from sales_agent.prompts.prompt_templates import build_reply_prompt
from sales_agent.schemas.conversation_schema import ActionResult, IntentResult
from sales_agent.schemas.session_schema import Session
from sales_agent.utils import to_number

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "INR": "₹",
}

DEFAULT_HELP = (
    "I can help with products, cart updates, checkout, and order tracking. "
    "What do you want to do next?"
)
BROWSE_LIMIT = 3


def format_currency(value: Any, currency: str = "USD") -> str:
    """Format an amount for display, e.g. ``$1,234.50`` or ``12.00 CHF``."""
    amount = to_number(value)
    code = (currency or "USD").upper()
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{amount:,.2f} {code}"
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def error_reply(error: str) -> str:
    return f"I hit an issue: {error} Please share another option and I can continue."


def fallback_reply(
    intent: str,
    action_result: ActionResult,
    session: Session,
    config: Optional[AppConfig] = None,
) -> str:
    """Deterministic reply for ``intent`` given the action outcome."""
    config = config or settings
    currency = config.business.currency
    data = action_result.data if isinstance(action_result.data, dict) else {}

    if intent == "greeting":
        return config.conversation.greeting_message or "Welcome. How can I help with your order today?"

    if intent == "browse_products":
        products = data.get("products") or []
        if not products:
            return (
                "I could not find matching products yet. "
                "Share what type, color, or price range you want."
            )
        names = ", ".join(
            f"{product.get('name')} ({format_currency(product.get('price'), currency)})"
            for product in products[:BROWSE_LIMIT]
        )
        return f"Here are a few options: {names}. Tell me which one you want to add."

    if intent == "add_to_cart":
        return f"Added to cart. You now have {session.cart.item_count()} item(s) in your cart."

    if intent == "view_cart":
        totals = data.get("totals")
        if not totals:
            return "Your cart is ready. Let me know if you want to checkout."
        return (
            f"Your cart total is {format_currency(totals.get('total'), currency)}. "
            'Say "checkout" when ready.'
        )

    if intent == "checkout":
        order = data.get("order")
        if not order:
            return (
                "I could not complete checkout yet. "
                "Please confirm your customer details and try again."
            )
        payment = data.get("payment") or {}
        reply = f"Order {order.get('order_number')} has been created."
        if payment.get("payment_link"):
            reply += f" Complete payment here: {payment['payment_link']}"
        return reply

    if intent == "track_order":
        order = data.get("order")
        if not order:
            return "I could not find that order. Please share your order ID."
        return f"Order {order.get('order_number')} is currently {order.get('status')}."

    if intent == "submit_payment_receipt":
        order_id = data.get("order_id")
        decision = data.get("decision")
        if decision == "approved":
            return (
                "Thanks. I verified your receipt and marked payment as completed "
                f"for order {order_id}."
            )
        if decision == "rejected":
            return (
                f"I could not validate that receipt for order {order_id}. "
                "Please upload a clearer payment proof or contact support."
            )
        return f"I received your receipt for order {order_id}. It is pending manual review."

    return DEFAULT_HELP


class ReplyComposer:
    """Writes the assistant reply for a completed action."""

    def __init__(self, llm: Any, config: Optional[AppConfig] = None) -> None:
        self._llm = llm
        self._config = config or settings

    async def compose(
        self,
        message: str,
        intent_result: IntentResult,
        action_result: ActionResult,
        session: Session,
    ) -> str:
        if action_result.error:
            return error_reply(action_result.error)

        enhanced = await self.enhance(message, intent_result, action_result, session)
        if enhanced:
            return enhanced
        return fallback_reply(intent_result.intent, action_result, session, self._config)

    async def enhance(
        self,
        message: str,
        intent_result: IntentResult,
        action_result: ActionResult,
        session: Session,
    ) -> Optional[str]:
        """Model-written reply, or None when the model fails or says nothing."""
        if self._llm is None:
            return None
        business = self._config.business
        prompt = build_reply_prompt(
            system_prompt=self._config.llm.system_prompt,
            business_name=business.name,
            business_description=business.description,
            currency=business.currency,
            message=message,
            intent=intent_result.intent,
            confidence=intent_result.confidence,
            entities=intent_result.entities,
            cart_summary=session.cart.summary(),
            action_data=action_result.data,
        )
        options = {
            "temperature": self._config.llm.temperature,
            "max_tokens": self._config.llm.max_tokens,
        }
        try:
            text = await self._llm.complete(prompt, options)
        except Exception as exc:
            logger.warning("Reply generation failed, using template: %s", exc)
            return None
        text = (text or "").strip() if isinstance(text, str) else ""
        return text or None
