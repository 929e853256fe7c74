"""
In-memory commerce adapters.

All four adapters share one ``MemoryCommerceBackend`` so an order created by
the order adapter is visible to the payment adapter. Records are copied on
the way out so callers cannot mutate stored state. Suitable for tests, the
console demo and prototyping; swap in ``sales_agent.adapters.sql`` for a
real database.
"""

import copy
import itertools
import logging
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from sales_agent.adapters.base import (
    CommerceAdapters,
    CustomerAdapter,
    OrderAdapter,
    PaymentAdapter,
    ProductAdapter,
)
from sales_agent.config import AppConfig, settings
from sales_agent.exceptions import (
    EmptyCartError,
    InsufficientStockError,
    MissingFieldError,
    NotFoundError,
)
from sales_agent.schemas.commerce_schema import (
    Availability,
    CustomerRecord,
    OrderRecord,
    OrderTotals,
    PaymentRecord,
    PaymentStatus,
    ProductFilters,
    ProductRecord,
    ReceiptProcessingResult,
    RecordId,
)
from sales_agent.utils import normalize_phone, round_money, to_number, utc_now_iso

logger = logging.getLogger(__name__)


def format_order_number(order_id: RecordId) -> str:
    return f"ORD-{str(order_id).zfill(6)}"


def generate_payment_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"pay_{int(time.time() * 1000)}_{suffix}"


def compute_totals(
    items: list[dict[str, Any]],
    tax_rate: float,
    free_shipping_threshold: float,
    default_shipping_cost: float,
) -> OrderTotals:
    """Subtotal, tax, shipping and total.

    Shipping tapers off as the subtotal nears the free-shipping threshold, so
    adding items never lowers the total.
    """
    subtotal = round_money(
        sum(to_number(item.get("price")) * to_number(item.get("quantity")) for item in items)
    )
    tax = round_money(subtotal * tax_rate)
    shipping = round_money(
        min(default_shipping_cost, max(0.0, free_shipping_threshold - subtotal))
    )
    return {
        "subtotal": subtotal,
        "tax": tax,
        "shipping": shipping,
        "total": round_money(subtotal + tax + shipping),
    }


def order_line(item: dict[str, Any]) -> dict[str, Any]:
    """Order line stored with an order, taken from a cart line."""
    return {
        "product_id": item.get("product_id"),
        "name": item.get("name"),
        "price": to_number(item.get("price")),
        "quantity": int(to_number(item.get("quantity"))),
        "color": item.get("color"),
        "size": item.get("size"),
    }


@dataclass
class MemoryCommerceBackend:
    """Shared in-process tables."""

    products: dict[str, ProductRecord] = field(default_factory=dict)
    orders: dict[str, OrderRecord] = field(default_factory=dict)
    customers: dict[str, CustomerRecord] = field(default_factory=dict)
    payments: dict[str, PaymentRecord] = field(default_factory=dict)
    receipts: list[dict[str, Any]] = field(default_factory=list)
    _ids: dict[str, Any] = field(default_factory=dict)

    def next_id(self, table: str) -> int:
        counter = self._ids.setdefault(table, itertools.count(1))
        return next(counter)

    def add_product(
        self,
        name: str,
        price: float,
        stock: int = 0,
        category: Optional[str] = None,
        description: str = "",
        colors: Optional[list[str]] = None,
        sizes: Optional[list[str]] = None,
        image_url: Optional[str] = None,
        status: Optional[str] = None,
    ) -> ProductRecord:
        """Seed a catalog product and return it."""
        product_id = self.next_id("products")
        product: ProductRecord = {
            "id": product_id,
            "name": name,
            "description": description,
            "price": to_number(price),
            "stock": int(stock),
            "category": category,
            "images": [image_url] if image_url else [],
            "attributes": {"color": list(colors or []), "size": list(sizes or [])},
            "status": status or ("active" if stock > 0 else "out_of_stock"),
        }
        self.products[str(product_id)] = product
        logger.debug("Product seeded: %s (%s)", name, product_id)
        return copy.deepcopy(product)

    def find_order(self, order_id: RecordId) -> Optional[OrderRecord]:
        """Look up an order by id or by order number."""
        key = str(order_id)
        if key in self.orders:
            return self.orders[key]
        for order in self.orders.values():
            if order.get("order_number", "").lower() == key.lower():
                return order
        return None


class MemoryProductAdapter(ProductAdapter):
    def __init__(self, backend: MemoryCommerceBackend) -> None:
        self.backend = backend

    async def search_products(
        self, query: str, filters: Optional[ProductFilters] = None
    ) -> list[ProductRecord]:
        filters = filters or {}
        needle = (query or "").strip().lower()
        category = (filters.get("category") or "").lower()
        min_price = filters.get("min_price")
        max_price = filters.get("max_price")

        results = []
        for product in self.backend.products.values():
            haystack = " ".join(
                str(product.get(key) or "") for key in ("name", "description", "category")
            ).lower()
            if needle and needle not in haystack:
                continue
            if category and (product.get("category") or "").lower() != category:
                continue
            if min_price is not None and product["price"] < min_price:
                continue
            if max_price is not None and product["price"] > max_price:
                continue
            if not filters.get("include_inactive") and product.get("status") != "active":
                continue
            results.append(copy.deepcopy(product))
        return sorted(results, key=lambda p: p["id"])

    async def get_product(self, product_id: RecordId) -> Optional[ProductRecord]:
        product = self.backend.products.get(str(product_id))
        return copy.deepcopy(product) if product else None

    async def check_availability(self, product_id: RecordId, quantity: int) -> Availability:
        product = self.backend.products.get(str(product_id))
        if product is None:
            return {"available": False, "stock": 0}
        return {
            "available": product["stock"] >= quantity and product.get("status") == "active",
            "stock": product["stock"],
        }

    async def get_related_products(
        self, product_id: RecordId, limit: int = 5
    ) -> list[ProductRecord]:
        product = self.backend.products.get(str(product_id))
        if product is None:
            return []
        candidates = [
            p for p in self.backend.products.values()
            if p["id"] != product["id"]
            and p.get("status") == "active"
            and (not product.get("category") or p.get("category") == product.get("category"))
        ]
        candidates.sort(key=lambda p: p["id"], reverse=True)
        return [copy.deepcopy(p) for p in candidates[:limit]]

    async def list_categories(self) -> list[dict[str, str]]:
        names = sorted({p["category"] for p in self.backend.products.values() if p.get("category")})
        return [{"name": name, "slug": "-".join(name.lower().split())} for name in names]


class MemoryOrderAdapter(OrderAdapter):
    def __init__(
        self,
        backend: MemoryCommerceBackend,
        tax_rate: float = settings.orders.tax_rate,
        free_shipping_threshold: float = settings.orders.free_shipping_threshold,
        default_shipping_cost: float = settings.orders.default_shipping_cost,
    ) -> None:
        self.backend = backend
        self.tax_rate = tax_rate
        self.free_shipping_threshold = free_shipping_threshold
        self.default_shipping_cost = default_shipping_cost

    async def calculate_totals(
        self, items: list[dict[str, Any]], customer: Optional[dict[str, Any]] = None
    ) -> OrderTotals:
        return compute_totals(
            items, self.tax_rate, self.free_shipping_threshold, self.default_shipping_cost
        )

    async def create_order(self, order_data: dict[str, Any]) -> OrderRecord:
        items = order_data.get("items") or []
        if not items:
            raise EmptyCartError("Cannot create order with empty items.")
        customer = order_data.get("customer") or {}
        totals = order_data.get("totals") or await self.calculate_totals(items, customer)

        self._assert_stock(items)
        for item in items:
            product = self.backend.products[str(item.get("product_id"))]
            product["stock"] -= int(to_number(item.get("quantity")))
            if product["stock"] <= 0:
                product["status"] = "out_of_stock"

        order_id = self.backend.next_id("orders")
        now = utc_now_iso()
        order: OrderRecord = {
            "id": order_id,
            "order_number": format_order_number(order_id),
            "customer": {
                "id": customer.get("id"),
                "name": customer.get("name"),
                "email": customer.get("email"),
                "phone": customer.get("phone"),
                "address": customer.get("address"),
            },
            "items": [order_line(item) for item in items],
            "totals": {key: round_money(totals.get(key)) for key in
                       ("subtotal", "tax", "shipping", "total")},
            "status": "pending",
            "payment_status": "pending",
            "payment_id": None,
            "payment_link": None,
            "notes": None,
            "created_at": now,
            "updated_at": now,
        }
        self.backend.orders[str(order_id)] = order
        logger.info("Order created: %s total=%s", order["order_number"], order["totals"]["total"])
        return copy.deepcopy(order)

    async def get_order(self, order_id: RecordId) -> Optional[OrderRecord]:
        order = self.backend.find_order(order_id)
        return copy.deepcopy(order) if order else None

    async def update_order_status(
        self, order_id: RecordId, status: str, notes: Optional[str] = None
    ) -> Optional[OrderRecord]:
        order = self.backend.find_order(order_id)
        if order is None:
            return None
        order["status"] = status
        if notes is not None:
            order["notes"] = notes
        order["updated_at"] = utc_now_iso()
        logger.info("Order %s status -> %s", order["order_number"], status)
        return copy.deepcopy(order)

    async def get_customer_orders(
        self, customer_id: RecordId, limit: int = 10
    ) -> list[OrderRecord]:
        orders = [
            o for o in self.backend.orders.values()
            if str(o["customer"].get("id")) == str(customer_id)
        ]
        orders.sort(key=lambda o: o["id"], reverse=True)
        return [copy.deepcopy(o) for o in orders[:limit]]

    def _assert_stock(self, items: list[dict[str, Any]]) -> None:
        # Variant lines of one product draw on the same stock.
        requested: dict[str, int] = {}
        for item in items:
            key = str(item.get("product_id"))
            requested[key] = requested.get(key, 0) + int(to_number(item.get("quantity")))
        for product_id, quantity in requested.items():
            product = self.backend.products.get(product_id)
            if product is None:
                raise NotFoundError(f"Product not found: {product_id}")
            if product["stock"] < quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for {product['name']}. Available: {product['stock']}"
                )


class MemoryCustomerAdapter(CustomerAdapter):
    def __init__(self, backend: MemoryCommerceBackend) -> None:
        self.backend = backend

    async def get_customer(self, customer_id: RecordId) -> Optional[CustomerRecord]:
        customer = self.backend.customers.get(str(customer_id))
        return copy.deepcopy(customer) if customer else None

    async def get_or_create_customer(self, identifier: dict[str, Any]) -> CustomerRecord:
        email = (identifier.get("email") or "").strip().lower()
        phone = normalize_phone(identifier.get("phone") or "")
        if not email and not phone:
            raise MissingFieldError("Customer identifier requires email or phone.")

        for customer in self.backend.customers.values():
            if email and customer.get("email") == email:
                return copy.deepcopy(customer)
        for customer in self.backend.customers.values():
            if phone and customer.get("phone") == phone:
                return copy.deepcopy(customer)

        customer_id = self.backend.next_id("customers")
        customer: CustomerRecord = {
            "id": customer_id,
            "name": identifier.get("name") or "Guest Customer",
            "email": email,
            "phone": phone,
            "address": identifier.get("address"),
            "metadata": dict(identifier.get("metadata") or {}),
            "created_at": utc_now_iso(),
        }
        self.backend.customers[str(customer_id)] = customer
        logger.info("New customer created: %s (%s)", customer["name"], customer_id)
        return copy.deepcopy(customer)

    async def update_customer(
        self, customer_id: RecordId, data: dict[str, Any]
    ) -> CustomerRecord:
        customer = self.backend.customers.get(str(customer_id))
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found.")
        for key in ("name", "email", "phone", "address", "metadata"):
            if data.get(key) is not None:
                customer[key] = data[key]
        return copy.deepcopy(customer)

    async def get_order_history(self, customer_id: RecordId) -> list[OrderRecord]:
        orders = [
            o for o in self.backend.orders.values()
            if str(o["customer"].get("id")) == str(customer_id)
        ]
        return [copy.deepcopy(o) for o in sorted(orders, key=lambda o: o["id"], reverse=True)]


class MemoryPaymentAdapter(PaymentAdapter):
    def __init__(
        self,
        backend: MemoryCommerceBackend,
        checkout_base_url: str = settings.payments.checkout_base_url,
    ) -> None:
        self.backend = backend
        self.checkout_base_url = checkout_base_url.rstrip("/")

    async def create_payment(self, payment_data: dict[str, Any]) -> PaymentRecord:
        order = self.backend.find_order(payment_data.get("order_id"))
        if order is None:
            raise NotFoundError(f"Order {payment_data.get('order_id')} not found.")

        payment_id = generate_payment_id()
        payment: PaymentRecord = {
            "id": payment_id,
            "order_id": order["id"],
            "amount": int(payment_data.get("amount") or 0),
            "currency": payment_data.get("currency") or "USD",
            "status": "pending",
            "payment_link": f"{self.checkout_base_url}/{payment_id}",
            "created_at": utc_now_iso(),
        }
        self.backend.payments[payment_id] = payment
        order.update(
            payment_id=payment_id,
            payment_link=payment["payment_link"],
            payment_status="pending",
            updated_at=utc_now_iso(),
        )
        logger.info("Payment %s created for %s", payment_id, order["order_number"])
        return copy.deepcopy(payment)

    async def verify_payment(self, payment_id: str) -> PaymentStatus:
        payment = self.backend.payments.get(payment_id)
        if payment is None:
            return {"status": "not_found", "verified": False}
        order = self.backend.find_order(payment["order_id"])
        status = (order or {}).get("payment_status") or payment["status"]
        return {"status": status, "verified": status in ("paid", "completed")}

    async def process_receipt(
        self,
        order_id: RecordId,
        receipt_ref: str,
        verification: dict[str, Any],
    ) -> ReceiptProcessingResult:
        order = self.backend.find_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found.")
        status = verification.get("status") or "pending_verification"
        self.backend.receipts.append({
            "order_id": order["id"],
            "receipt_ref": receipt_ref,
            "decision": verification.get("decision"),
            "confidence": verification.get("confidence"),
            "reason": verification.get("reason"),
            "status": status,
            "created_at": utc_now_iso(),
        })
        order["payment_status"] = status
        if status == "paid":
            order["status"] = "paid"
        order["updated_at"] = utc_now_iso()
        logger.info("Receipt for %s recorded as %s", order["order_number"], status)
        return {
            "verified": status == "paid",
            "status": status,
            "decision": verification.get("decision"),
            "confidence": verification.get("confidence"),
        }


def create_memory_adapters(
    backend: Optional[MemoryCommerceBackend] = None,
    config: Optional[AppConfig] = None,
) -> CommerceAdapters:
    """Wire all four in-memory adapters to one backend."""
    backend = backend or MemoryCommerceBackend()
    config = config or settings
    return CommerceAdapters(
        products=MemoryProductAdapter(backend),
        orders=MemoryOrderAdapter(
            backend,
            tax_rate=config.orders.tax_rate,
            free_shipping_threshold=config.orders.free_shipping_threshold,
            default_shipping_cost=config.orders.default_shipping_cost,
        ),
        customers=MemoryCustomerAdapter(backend),
        payments=MemoryPaymentAdapter(backend, checkout_base_url=config.payments.checkout_base_url),
    )
