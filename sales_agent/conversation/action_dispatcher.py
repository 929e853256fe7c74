"""
Intent-to-action dispatch against the commerce collaborators.

Each supported intent maps to one coroutine in a dispatch table. A branch
may raise (missing adapter, unknown product, insufficient stock, empty cart);
``execute`` converts every such exception into ``ActionResult.error`` so the
turn still completes and the customer gets an apology instead of a crash.

Checkout is the only multi-step sequence where partial failure matters:
- order creation failing leaves the cart untouched and skips payment
- payment creation failing after an order still returns the order
- the cart is cleared only once the order exists
"""

import logging
import math
from typing import Any, Awaitable, Callable, Optional

from sales_agent.adapters.base import CommerceAdapters
from sales_agent.config import AppConfig, settings
from sales_agent.conversation.receipt_verification import (
    ReceiptAnalyzer,
    ReceiptDecisionPolicy,
    status_for_decision,
)
from sales_agent.exceptions import (
    AdapterMissingError,
    EmptyCartError,
    InsufficientStockError,
    MissingFieldError,
    NotFoundError,
)
from sales_agent.schemas.conversation_schema import (
    ActionFlags,
    ActionResult,
    IntentResult,
    ReceiptDecision,
    ReceiptVerification,
)
from sales_agent.schemas.session_schema import Cart, CartItem, Session, make_line_id
from sales_agent.utils import first_present, to_number

logger = logging.getLogger(__name__)

NO_ACTION = {"info": "No action required for this intent."}
RELATED_PRODUCTS_LIMIT = 5

ORDER_ID_KEYS = ("order_id", "orderId")
RECEIPT_KEYS = ("receipt_url", "receiptUrl", "receiptURL", "image_url", "imageUrl")
PAYMENT_ID_KEYS = ("payment_id", "paymentId")

# Backend statuses reported to customers under a different name
STATUS_ALIASES = {"completed": "delivered"}

Branch = Callable[[IntentResult, Session, dict[str, Any]], Awaitable[Optional[dict[str, Any]]]]


def resolve_field(
    entities: dict[str, Any], metadata: dict[str, Any], entity_key: str, metadata_keys: tuple[str, ...]
) -> Any:
    """Entity value first, then the first metadata alias that is set."""
    return first_present(entities.get(entity_key), *(metadata.get(key) for key in metadata_keys))


def requested_quantity(value: Any) -> int:
    """``max(1, floor(value or 1))``; non-numeric input counts as 1."""
    return max(1, math.floor(to_number(value, 1.0)))


def report_status(status: Optional[str]) -> Optional[str]:
    return STATUS_ALIASES.get(status, status) if status is not None else None


class ActionDispatcher:
    """Executes the business action behind a classified intent."""

    def __init__(
        self,
        adapters: Optional[CommerceAdapters] = None,
        llm: Any = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self.adapters = adapters or CommerceAdapters()
        self._config = config or settings
        self.receipt_analyzer = ReceiptAnalyzer(llm, self._config)
        self.decision_policy = ReceiptDecisionPolicy.from_config(self._config)

        self._branches: dict[str, Branch] = {
            "browse_products": self._browse_products,
            "product_inquiry": self._product_inquiry,
            "add_to_cart": self._add_to_cart,
            "view_cart": self._view_cart,
            "remove_from_cart": self._remove_from_cart,
            "checkout": self._checkout,
            "submit_payment_receipt": self._submit_payment_receipt,
            "track_order": self._track_order,
        }

    @property
    def supported_intents(self) -> tuple[str, ...]:
        return tuple(self._branches)

    async def execute(
        self,
        intent_result: IntentResult,
        session: Session,
        turn_metadata: Optional[dict[str, Any]] = None,
    ) -> ActionResult:
        """Run the branch for ``intent_result.intent``. Never raises."""
        metadata = dict(turn_metadata or {})
        result = ActionResult()
        branch = self._branches.get(intent_result.intent)
        if branch is None:
            result.data = dict(NO_ACTION)
            return result

        try:
            result.data = await branch(intent_result, session, metadata)
        except Exception as exc:
            logger.info("Action %s failed: %s", intent_result.intent, exc)
            result.error = str(exc) or exc.__class__.__name__
            return result

        result.actions = self._flags_for(intent_result.intent, result.data or {})
        return result

    @staticmethod
    def _flags_for(intent: str, data: dict[str, Any]) -> ActionFlags:
        return ActionFlags(
            added_to_cart=intent == "add_to_cart" and bool(data.get("added")),
            removed_from_cart=intent == "remove_from_cart" and bool(data.get("removed")),
            proceed_to_checkout=intent == "checkout" and bool(data.get("order")),
        )

    def _require(self, name: str, purpose: str) -> Any:
        adapter = getattr(self.adapters, name)
        if adapter is None:
            raise AdapterMissingError(f"{name.capitalize()} adapter is required for {purpose}.")
        return adapter

    async def _find_product(self, entities: dict[str, Any], message: str) -> Optional[dict[str, Any]]:
        products = self._require("products", "product lookup")
        product = None
        if entities.get("product_id"):
            product = await products.get_product(entities["product_id"])
        if not product:
            matches = await products.search_products(entities.get("product_type") or message or "", {})
            product = matches[0] if matches else None
        return product

    # -- branches ---------------------------------------------------------

    async def _browse_products(
        self, intent_result: IntentResult, session: Session, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        products = self._require("products", "browsing products")
        entities = intent_result.entities
        query = entities.get("product_type") or entities.get("category") or metadata.get("message") or ""
        filters = {"category": entities["category"]} if entities.get("category") else {}
        return {"products": await products.search_products(query, filters)}

    async def _product_inquiry(
        self, intent_result: IntentResult, session: Session, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        products = self._require("products", "product inquiry")
        product = await self._find_product(intent_result.entities, metadata.get("message", ""))
        related = (
            await products.get_related_products(product["id"], RELATED_PRODUCTS_LIMIT)
            if product else []
        )
        return {"product": product, "related_products": related}

    async def _add_to_cart(
        self, intent_result: IntentResult, session: Session, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        products = self._require("products", "adding to cart")
        entities = intent_result.entities
        quantity = requested_quantity(entities.get("quantity"))
        color = entities.get("color") or None
        size = entities.get("size") or None

        product = await self._find_product(entities, metadata.get("message", ""))
        if not product:
            raise NotFoundError("Product not found for add-to-cart request.")

        availability = await products.check_availability(product["id"], quantity)
        if not availability.get("available"):
            raise InsufficientStockError(
                f"Insufficient stock for {product['name']}. Available: {availability.get('stock', 0)}."
            )

        line_id = make_line_id(product["id"], color, size)
        existing = session.cart.find_line(line_id)
        if existing is not None:
            existing.quantity += quantity
        else:
            session.cart.items.append(CartItem(
                line_id=line_id,
                product_id=product["id"],
                name=product["name"],
                price=to_number(product.get("price")),
                quantity=quantity,
                color=color,
                size=size,
                category=product.get("category"),
            ))

        return {
            "added": True,
            "cart": session.cart.model_dump(mode="json"),
            "item": product,
            "quantity": quantity,
        }

    async def _view_cart(
        self, intent_result: IntentResult, session: Session, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        cart = session.cart
        subtotal = cart.subtotal()
        totals = {"subtotal": subtotal, "tax": 0.0, "shipping": 0.0, "total": subtotal}
        if cart.items and self.adapters.orders is not None:
            totals = await self.adapters.orders.calculate_totals(
                cart.as_dicts(), session.customer or {}
            )
        return {"items": cart.as_dicts(), "totals": totals}

    async def _remove_from_cart(
        self, intent_result: IntentResult, session: Session, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        cart = session.cart
        product_id = intent_result.entities.get("product_id")
        if product_id:
            kept = [item for item in cart.items if str(item.product_id) != str(product_id)]
            removed = len(kept) != len(cart.items)
            cart.items = kept
        else:
            removed = bool(cart.items)
            cart.items = []
        return {"removed": removed, "cart": cart.model_dump(mode="json")}

    async def _checkout(
        self, intent_result: IntentResult, session: Session, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        orders = self._require("orders", "checkout")
        if not session.cart.items:
            raise EmptyCartError("Cart is empty.")
        customer = await self._resolve_customer(session, metadata.get("customer"))

        items = session.cart.as_dicts()
        totals = await orders.calculate_totals(items, customer)
        order = await orders.create_order({"items": items, "customer": customer, "totals": totals})

        payment = None
        if self.adapters.payments is not None:
            try:
                payment = await self.adapters.payments.create_payment({
                    "amount": round(to_number(totals.get("total")) * 100),
                    "currency": self._config.business.currency,
                    "order_id": order["id"],
                    "customer": customer,
                })
            except Exception as exc:
                logger.warning(
                    "Payment creation failed for order %s: %s", order.get("order_number"), exc
                )

        session.cart = Cart()
        return {"order": order, "payment": payment, "totals": totals}

    async def _submit_payment_receipt(
        self, intent_result: IntentResult, session: Session, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        payments = self._require("payments", "receipt verification")
        entities = intent_result.entities

        order_id = resolve_field(entities, metadata, "order_id", ORDER_ID_KEYS)
        receipt_ref = resolve_field(entities, metadata, "receipt_url", RECEIPT_KEYS)
        payment_id = resolve_field(entities, metadata, "payment_id", PAYMENT_ID_KEYS)
        if not order_id:
            raise MissingFieldError("Order ID is required to verify a receipt.")
        if not receipt_ref:
            raise MissingFieldError("Receipt URL/path is required to verify a payment receipt.")

        order = None
        if self.adapters.orders is not None:
            order = await self.adapters.orders.get_order(order_id)
            if not order:
                raise NotFoundError(f"Order {order_id} was not found.")

        analysis = await self.receipt_analyzer.analyze(order_id, receipt_ref, order, payment_id)
        verification = ReceiptVerification(
            decision=self.decision_policy.decide(analysis.confidence),
            confidence=analysis.confidence,
            reason=analysis.reason,
            validity=analysis.validity,
        )
        payment_status = status_for_decision(verification.decision)

        processed = await payments.process_receipt(order_id, receipt_ref, {
            "decision": verification.decision.value,
            "confidence": verification.confidence,
            "reason": verification.reason,
            "status": payment_status,
            "analysis": {"validity": analysis.validity.value, "raw": analysis.raw},
        }) or {}

        verified = processed.get("verified")
        if not isinstance(verified, bool):
            verified = verification.decision == ReceiptDecision.APPROVED
        logger.info(
            "Receipt for order %s decided %s (confidence %.2f)",
            order_id, verification.decision.value, verification.confidence,
        )
        return {
            "order_id": order_id,
            "receipt_url": receipt_ref,
            "payment_status": processed.get("status") or payment_status,
            "verified": verified,
            **verification.model_dump(mode="json"),
        }

    async def _track_order(
        self, intent_result: IntentResult, session: Session, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        orders = self._require("orders", "order tracking")
        order_id = resolve_field(intent_result.entities, metadata, "order_id", ORDER_ID_KEYS)
        if not order_id:
            raise MissingFieldError("Order ID is required to track an order.")
        order = await orders.get_order(order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} was not found.")
        return {"order": {**order, "status": report_status(order.get("status"))}}

    async def _resolve_customer(
        self, session: Session, override: Optional[dict[str, Any]]
    ) -> dict[str, Any]:
        """Merge the override onto the session customer; upsert when identifiable."""
        candidate = {**(session.customer or {}), **(override or {})}
        customers = self.adapters.customers
        if customers is None:
            session.customer = candidate or None
            return candidate
        if not candidate.get("email") and not candidate.get("phone"):
            return candidate

        customer = await customers.get_or_create_customer({
            "email": candidate.get("email"),
            "phone": candidate.get("phone"),
            "name": candidate.get("name"),
            "address": candidate.get("address"),
        })
        session.customer = dict(customer)
        return dict(customer)
