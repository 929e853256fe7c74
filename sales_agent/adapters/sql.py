"""
Relational commerce adapters on SQLAlchemy 2.0 asyncio.

Every adapter call is one unit of work on an ``AsyncSession``, so database
round trips suspend the turn instead of blocking the event loop. Works with
any async SQLAlchemy URL (``sqlite+aiosqlite`` by default); plain ``sqlite://``
URLs are upgraded to the aiosqlite driver. The schema is created on first
use. Order creation checks and deducts stock inside the same transaction as
the order insert, so a failed stock check leaves no partial order behind.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Float, ForeignKey, Integer, String, Text, or_, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from sales_agent.adapters.base import (
    CommerceAdapters,
    CustomerAdapter,
    OrderAdapter,
    PaymentAdapter,
    ProductAdapter,
)
from sales_agent.adapters.memory import (
    compute_totals,
    format_order_number,
    generate_payment_id,
    order_line,
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
from sales_agent.utils import normalize_phone, round_money, to_number

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ProductRow(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[Optional[str]] = mapped_column(String(120), index=True)
    price: Mapped[float] = mapped_column(Float, default=0.0)
    colors: Mapped[list] = mapped_column(JSON, default=list)
    sizes: Mapped[list] = mapped_column(JSON, default=list)
    stock: Mapped[int] = mapped_column(Integer, default=0)
    image_url: Mapped[Optional[str]] = mapped_column(String(500))
    status: Mapped[str] = mapped_column(String(32), default="active")
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)


class CustomerRow(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="Guest Customer")
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    address: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)


class OrderRow(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(32), default="PENDING", index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"))
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(32))
    customer_address: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    items: Mapped[list] = mapped_column(JSON, default=list)
    subtotal: Mapped[float] = mapped_column(Float, default=0.0)
    tax: Mapped[float] = mapped_column(Float, default=0.0)
    shipping: Mapped[float] = mapped_column(Float, default=0.0)
    total: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(32), default="pending")
    payment_status: Mapped[str] = mapped_column(String(32), default="pending")
    payment_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    payment_link: Mapped[Optional[str]] = mapped_column(String(500))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)


class PaymentVerificationRow(Base):
    __tablename__ = "payment_verifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"))
    image_path: Mapped[str] = mapped_column(String(1000))
    decision: Mapped[Optional[str]] = mapped_column(String(16))
    confidence: Mapped[Optional[float]] = mapped_column(Float)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(32), default="pending_verification")
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _product_record(row: ProductRow) -> ProductRecord:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description or "",
        "price": to_number(row.price),
        "stock": int(row.stock or 0),
        "category": row.category,
        "images": [row.image_url] if row.image_url else [],
        "attributes": {"color": list(row.colors or []), "size": list(row.sizes or [])},
        "status": row.status or ("active" if (row.stock or 0) > 0 else "out_of_stock"),
    }


def _customer_record(row: CustomerRow) -> CustomerRecord:
    return {
        "id": row.id,
        "name": row.name or "",
        "email": row.email or "",
        "phone": row.phone or "",
        "address": row.address,
        "metadata": dict(row.metadata_ or {}),
        "created_at": _iso(row.created_at),
    }


def _order_record(row: OrderRow) -> OrderRecord:
    return {
        "id": row.id,
        "order_number": row.order_number or format_order_number(row.id),
        "customer": {
            "id": row.customer_id,
            "name": row.customer_name,
            "email": row.customer_email,
            "phone": row.customer_phone,
            "address": row.customer_address,
        },
        "items": [order_line(item) for item in (row.items or [])],
        "totals": {
            "subtotal": to_number(row.subtotal),
            "tax": to_number(row.tax),
            "shipping": to_number(row.shipping),
            "total": to_number(row.total),
        },
        "status": row.status,
        "payment_status": row.payment_status or "pending",
        "payment_id": row.payment_id,
        "payment_link": row.payment_link,
        "notes": row.notes,
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///sales_agent.db"


def async_database_url(url: str) -> str:
    """Route plain SQLite URLs through the aiosqlite driver."""
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class SQLDatabase:
    """Async engine plus session factory shared by the SQL adapters."""

    def __init__(self, url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> None:
        url = async_database_url(url)
        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite") and ":memory:" in url:
            kwargs.update(
                connect_args={"check_same_thread": False}, poolclass=StaticPool
            )
        self.engine: AsyncEngine = create_async_engine(url, **kwargs)
        self.sessions = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    async def create_all(self) -> None:
        """Create any missing tables. Safe to call more than once."""
        if self._schema_ready:
            return
        async with self._schema_lock:
            if self._schema_ready:
                return
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._schema_ready = True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Read-only unit of work."""
        await self.create_all()
        async with self.sessions() as db:
            yield db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Unit of work committed on exit and rolled back on error."""
        await self.create_all()
        async with self.sessions.begin() as db:
            yield db

    async def close(self) -> None:
        await self.engine.dispose()

    async def find_order(self, db: AsyncSession, order_id: RecordId) -> Optional[OrderRow]:
        key = str(order_id)
        if key.isdigit():
            row = await db.get(OrderRow, int(key))
            if row is not None:
                return row
        return await db.scalar(select(OrderRow).where(OrderRow.order_number == key.upper()))

    async def add_product(
        self, name: str, price: float, stock: int = 0, **fields: Any
    ) -> ProductRecord:
        """Seed a catalog product and return it."""
        async with self.transaction() as db:
            row = ProductRow(
                name=name,
                price=price,
                stock=stock,
                status=fields.pop("status", None) or ("active" if stock > 0 else "out_of_stock"),
                **fields,
            )
            db.add(row)
            await db.flush()
            return _product_record(row)


class SQLProductAdapter(ProductAdapter):
    def __init__(self, database: SQLDatabase) -> None:
        self.database = database

    async def search_products(
        self, query: str, filters: Optional[ProductFilters] = None
    ) -> list[ProductRecord]:
        filters = filters or {}
        stmt = select(ProductRow)
        if query:
            like = f"%{query}%"
            stmt = stmt.where(or_(
                ProductRow.name.ilike(like),
                ProductRow.description.ilike(like),
                ProductRow.category.ilike(like),
            ))
        if filters.get("category"):
            stmt = stmt.where(ProductRow.category == filters["category"])
        if filters.get("min_price") is not None:
            stmt = stmt.where(ProductRow.price >= filters["min_price"])
        if filters.get("max_price") is not None:
            stmt = stmt.where(ProductRow.price <= filters["max_price"])
        if not filters.get("include_inactive"):
            stmt = stmt.where(ProductRow.status == "active")
        async with self.database.session() as db:
            rows = (await db.scalars(stmt.order_by(ProductRow.id))).all()
            return [_product_record(row) for row in rows]

    async def get_product(self, product_id: RecordId) -> Optional[ProductRecord]:
        if not str(product_id).isdigit():
            return None
        async with self.database.session() as db:
            row = await db.get(ProductRow, int(product_id))
            return _product_record(row) if row else None

    async def check_availability(self, product_id: RecordId, quantity: int) -> Availability:
        product = await self.get_product(product_id)
        if product is None:
            return {"available": False, "stock": 0}
        return {
            "available": product["stock"] >= quantity and product["status"] == "active",
            "stock": product["stock"],
        }

    async def get_related_products(
        self, product_id: RecordId, limit: int = 5
    ) -> list[ProductRecord]:
        product = await self.get_product(product_id)
        if product is None:
            return []
        stmt = select(ProductRow).where(
            ProductRow.id != product["id"], ProductRow.status == "active"
        )
        if product["category"]:
            stmt = stmt.where(ProductRow.category == product["category"])
        async with self.database.session() as db:
            rows = (await db.scalars(stmt.order_by(ProductRow.id.desc()).limit(limit))).all()
            return [_product_record(row) for row in rows]

    async def list_categories(self) -> list[dict[str, str]]:
        stmt = (
            select(ProductRow.category)
            .where(ProductRow.category.is_not(None), ProductRow.category != "")
            .distinct()
            .order_by(ProductRow.category)
        )
        async with self.database.session() as db:
            names = (await db.scalars(stmt)).all()
        return [{"name": name, "slug": "-".join(name.lower().split())} for name in names]


class SQLOrderAdapter(OrderAdapter):
    def __init__(
        self,
        database: SQLDatabase,
        tax_rate: float = settings.orders.tax_rate,
        free_shipping_threshold: float = settings.orders.free_shipping_threshold,
        default_shipping_cost: float = settings.orders.default_shipping_cost,
    ) -> None:
        self.database = database
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

        async with self.database.transaction() as db:
            for item in items:
                product = await db.get(ProductRow, int(to_number(item.get("product_id"), -1)))
                if product is None:
                    raise NotFoundError(f"Product not found: {item.get('product_id')}")
                quantity = int(to_number(item.get("quantity")))
                if product.stock < quantity:
                    raise InsufficientStockError(
                        f"Insufficient stock for {product.name}. Available: {product.stock}"
                    )
                product.stock -= quantity
                if product.stock <= 0:
                    product.status = "out_of_stock"

            customer_id = customer.get("id")
            row = OrderRow(
                customer_id=int(customer_id) if str(customer_id or "").isdigit() else None,
                customer_name=customer.get("name"),
                customer_email=customer.get("email"),
                customer_phone=customer.get("phone"),
                customer_address=customer.get("address"),
                items=[order_line(item) for item in items],
                subtotal=round_money(totals.get("subtotal")),
                tax=round_money(totals.get("tax")),
                shipping=round_money(totals.get("shipping")),
                total=round_money(totals.get("total")),
            )
            db.add(row)
            await db.flush()
            row.order_number = format_order_number(row.id)
            record = _order_record(row)

        logger.info("Order created: %s total=%s", record["order_number"], record["totals"]["total"])
        return record

    async def get_order(self, order_id: RecordId) -> Optional[OrderRecord]:
        async with self.database.session() as db:
            row = await self.database.find_order(db, order_id)
            return _order_record(row) if row else None

    async def update_order_status(
        self, order_id: RecordId, status: str, notes: Optional[str] = None
    ) -> Optional[OrderRecord]:
        async with self.database.transaction() as db:
            row = await self.database.find_order(db, order_id)
            if row is None:
                return None
            row.status = status
            if notes is not None:
                row.notes = notes
            await db.flush()
            return _order_record(row)

    async def get_customer_orders(
        self, customer_id: RecordId, limit: int = 10
    ) -> list[OrderRecord]:
        stmt = (
            select(OrderRow)
            .where(OrderRow.customer_id == int(to_number(customer_id, -1)))
            .order_by(OrderRow.id.desc())
            .limit(limit)
        )
        async with self.database.session() as db:
            return [_order_record(row) for row in (await db.scalars(stmt)).all()]


class SQLCustomerAdapter(CustomerAdapter):
    def __init__(self, database: SQLDatabase) -> None:
        self.database = database

    async def get_customer(self, customer_id: RecordId) -> Optional[CustomerRecord]:
        async with self.database.session() as db:
            row = await db.get(CustomerRow, int(to_number(customer_id, -1)))
            return _customer_record(row) if row else None

    async def get_or_create_customer(self, identifier: dict[str, Any]) -> CustomerRecord:
        email = (identifier.get("email") or "").strip().lower()
        phone = normalize_phone(identifier.get("phone") or "")
        if not email and not phone:
            raise MissingFieldError("Customer identifier requires email or phone.")

        async with self.database.transaction() as db:
            row = None
            if email:
                row = await db.scalar(select(CustomerRow).where(CustomerRow.email == email))
            if row is None and phone:
                row = await db.scalar(select(CustomerRow).where(CustomerRow.phone == phone))
            if row is None:
                row = CustomerRow(
                    name=identifier.get("name") or "Guest Customer",
                    email=email or None,
                    phone=phone or None,
                    address=identifier.get("address"),
                    metadata_=dict(identifier.get("metadata") or {}),
                )
                db.add(row)
                await db.flush()
                logger.info("New customer created: %s (%s)", row.name, row.id)
            return _customer_record(row)

    async def update_customer(
        self, customer_id: RecordId, data: dict[str, Any]
    ) -> CustomerRecord:
        async with self.database.transaction() as db:
            row = await db.get(CustomerRow, int(to_number(customer_id, -1)))
            if row is None:
                raise NotFoundError(f"Customer {customer_id} not found.")
            for key in ("name", "email", "phone", "address"):
                if data.get(key) is not None:
                    setattr(row, key, data[key])
            if data.get("metadata") is not None:
                row.metadata_ = data["metadata"]
            await db.flush()
            return _customer_record(row)

    async def get_order_history(self, customer_id: RecordId) -> list[OrderRecord]:
        stmt = (
            select(OrderRow)
            .where(OrderRow.customer_id == int(to_number(customer_id, -1)))
            .order_by(OrderRow.id.desc())
        )
        async with self.database.session() as db:
            return [_order_record(row) for row in (await db.scalars(stmt)).all()]


class SQLPaymentAdapter(PaymentAdapter):
    def __init__(
        self,
        database: SQLDatabase,
        checkout_base_url: str = settings.payments.checkout_base_url,
    ) -> None:
        self.database = database
        self.checkout_base_url = checkout_base_url.rstrip("/")

    async def create_payment(self, payment_data: dict[str, Any]) -> PaymentRecord:
        payment_id = generate_payment_id()
        payment_link = f"{self.checkout_base_url}/{payment_id}"
        async with self.database.transaction() as db:
            order = await self.database.find_order(db, payment_data.get("order_id"))
            if order is None:
                raise NotFoundError(f"Order {payment_data.get('order_id')} not found.")
            order.payment_id = payment_id
            order.payment_link = payment_link
            order.payment_status = "pending"
            order_id = order.id

        logger.info("Payment %s created for order %s", payment_id, order_id)
        return {
            "id": payment_id,
            "order_id": order_id,
            "amount": int(payment_data.get("amount") or 0),
            "currency": payment_data.get("currency") or "USD",
            "status": "pending",
            "payment_link": payment_link,
            "created_at": utc_now().isoformat(),
        }

    async def verify_payment(self, payment_id: str) -> PaymentStatus:
        async with self.database.session() as db:
            status = await db.scalar(
                select(OrderRow.payment_status).where(OrderRow.payment_id == payment_id)
            )
        if status is None:
            return {"status": "not_found", "verified": False}
        return {"status": status, "verified": status in ("paid", "completed")}

    async def process_receipt(
        self,
        order_id: RecordId,
        receipt_ref: str,
        verification: dict[str, Any],
    ) -> ReceiptProcessingResult:
        status = verification.get("status") or "pending_verification"
        async with self.database.transaction() as db:
            order = await self.database.find_order(db, order_id)
            if order is None:
                raise NotFoundError(f"Order {order_id} not found.")
            db.add(PaymentVerificationRow(
                order_id=order.id,
                image_path=receipt_ref,
                decision=verification.get("decision"),
                confidence=verification.get("confidence"),
                reason=verification.get("reason"),
                status=status,
            ))
            order.payment_status = status
            if status == "paid":
                order.status = "paid"
        return {
            "verified": status == "paid",
            "status": status,
            "decision": verification.get("decision"),
            "confidence": verification.get("confidence"),
        }


def create_sql_adapters(
    url: str = DEFAULT_DATABASE_URL,
    config: Optional[AppConfig] = None,
    database: Optional[SQLDatabase] = None,
) -> CommerceAdapters:
    """Wire all four SQL adapters to one database. Tables are created on first use."""
    config = config or settings
    database = database if database is not None else SQLDatabase(url)
    return CommerceAdapters(
        products=SQLProductAdapter(database),
        orders=SQLOrderAdapter(
            database,
            tax_rate=config.orders.tax_rate,
            free_shipping_threshold=config.orders.free_shipping_threshold,
            default_shipping_cost=config.orders.default_shipping_cost,
        ),
        customers=SQLCustomerAdapter(database),
        payments=SQLPaymentAdapter(database, checkout_base_url=config.payments.checkout_base_url),
    )
