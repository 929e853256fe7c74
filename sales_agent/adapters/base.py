"""
Abstract commerce collaborators consumed by the action dispatcher.

The dispatcher depends only on these interfaces. Bundled variants live in
``sales_agent.adapters.memory`` (in-process, used by tests and the console
demo) and ``sales_agent.adapters.sql`` (SQLAlchemy).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

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


class ProductAdapter(ABC):
    """Product catalog operations."""

    @abstractmethod
    async def search_products(
        self, query: str, filters: Optional[ProductFilters] = None
    ) -> list[ProductRecord]:
        """Search products by free text, optionally filtered by category and price."""

    @abstractmethod
    async def get_product(self, product_id: RecordId) -> Optional[ProductRecord]:
        ...

    @abstractmethod
    async def check_availability(self, product_id: RecordId, quantity: int) -> Availability:
        ...

    @abstractmethod
    async def get_related_products(
        self, product_id: RecordId, limit: int = 5
    ) -> list[ProductRecord]:
        ...

    @abstractmethod
    async def list_categories(self) -> list[dict[str, str]]:
        ...


class OrderAdapter(ABC):
    """Order creation, lookup and pricing."""

    @abstractmethod
    async def calculate_totals(
        self, items: list[dict[str, Any]], customer: Optional[dict[str, Any]] = None
    ) -> OrderTotals:
        ...

    @abstractmethod
    async def create_order(self, order_data: dict[str, Any]) -> OrderRecord:
        """Create an order from ``{items, customer, totals}``."""

    @abstractmethod
    async def get_order(self, order_id: RecordId) -> Optional[OrderRecord]:
        ...

    @abstractmethod
    async def update_order_status(
        self, order_id: RecordId, status: str, notes: Optional[str] = None
    ) -> Optional[OrderRecord]:
        ...

    @abstractmethod
    async def get_customer_orders(
        self, customer_id: RecordId, limit: int = 10
    ) -> list[OrderRecord]:
        ...


class CustomerAdapter(ABC):
    """Customer identity resolution."""

    @abstractmethod
    async def get_customer(self, customer_id: RecordId) -> Optional[CustomerRecord]:
        ...

    @abstractmethod
    async def get_or_create_customer(self, identifier: dict[str, Any]) -> CustomerRecord:
        """Find a customer by email or phone, creating one if neither matches."""

    @abstractmethod
    async def update_customer(
        self, customer_id: RecordId, data: dict[str, Any]
    ) -> CustomerRecord:
        ...

    @abstractmethod
    async def get_order_history(self, customer_id: RecordId) -> list[OrderRecord]:
        ...


class PaymentAdapter(ABC):
    """Payment references and receipt processing."""

    @abstractmethod
    async def create_payment(self, payment_data: dict[str, Any]) -> PaymentRecord:
        """Create a payment for ``{amount, currency, order_id, customer}``.

        ``amount`` is in the currency's smallest unit.
        """

    @abstractmethod
    async def verify_payment(self, payment_id: str) -> PaymentStatus:
        ...

    @abstractmethod
    async def process_receipt(
        self,
        order_id: RecordId,
        receipt_ref: str,
        verification: dict[str, Any],
    ) -> ReceiptProcessingResult:
        """Record a receipt decision ``{decision, confidence, reason, status, analysis}``."""


@dataclass
class CommerceAdapters:
    """The set of collaborators available to the dispatcher. Any may be absent."""

    products: Optional[ProductAdapter] = None
    orders: Optional[OrderAdapter] = None
    customers: Optional[CustomerAdapter] = None
    payments: Optional[PaymentAdapter] = None
