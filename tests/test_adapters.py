"""Contract tests run against both bundled commerce adapter sets."""

import asyncio

import pytest
import pytest_asyncio

from sales_agent.adapters.memory import MemoryCommerceBackend, create_memory_adapters
from sales_agent.adapters.sql import SQLDatabase, async_database_url, create_sql_adapters
from sales_agent.exceptions import EmptyCartError, InsufficientStockError, MissingFieldError
from tests.conftest import make_config


CATALOG = [
    ("Classic T-Shirt", 25, {"stock": 3, "category": "apparel", "description": "Soft cotton tee"}),
    ("Zip Hoodie", 55, {"stock": 10, "category": "apparel", "description": "Warm fleece"}),
    ("Canvas Tote", 18, {"stock": 4, "category": "Bags", "description": "Sturdy tote"}),
    ("Retired Cap", 12, {"stock": 0, "category": "apparel"}),
]


@pytest_asyncio.fixture(params=["memory", "sql"])
async def shop(request):
    """(adapters, catalog) seeded with CATALOG."""
    config = make_config()
    if request.param == "memory":
        catalog = MemoryCommerceBackend()
        for name, price, fields in CATALOG:
            catalog.add_product(name, price, **fields)
        yield create_memory_adapters(catalog, config), catalog
    else:
        catalog = SQLDatabase("sqlite:///:memory:")
        for name, price, fields in CATALOG:
            await catalog.add_product(name, price, **fields)
        yield create_sql_adapters(config=config, database=catalog), catalog
        await catalog.close()


def _line(product_id, quantity, price):
    return {"product_id": product_id, "name": f"P{product_id}", "price": price, "quantity": quantity}


class TestProducts:
    @pytest.mark.asyncio
    async def test_text_search_is_case_insensitive(self, shop):
        adapters, _ = shop
        results = await adapters.products.search_products("COTTON")
        assert [p["name"] for p in results] == ["Classic T-Shirt"]

    @pytest.mark.asyncio
    async def test_inactive_products_hidden_by_default(self, shop):
        adapters, _ = shop
        names = [p["name"] for p in await adapters.products.search_products("")]
        assert "Retired Cap" not in names
        everything = await adapters.products.search_products("", {"include_inactive": True})
        assert len(everything) == 4

    @pytest.mark.asyncio
    async def test_filters(self, shop):
        adapters, _ = shop
        by_category = await adapters.products.search_products("", {"category": "apparel"})
        assert [p["name"] for p in by_category] == ["Classic T-Shirt", "Zip Hoodie"]
        by_price = await adapters.products.search_products("", {"min_price": 20, "max_price": 30})
        assert [p["name"] for p in by_price] == ["Classic T-Shirt"]

    @pytest.mark.asyncio
    async def test_get_product(self, shop):
        adapters, _ = shop
        product = await adapters.products.get_product(1)
        assert product["name"] == "Classic T-Shirt"
        assert product["price"] == 25.0
        assert await adapters.products.get_product(999) is None

    @pytest.mark.asyncio
    async def test_availability(self, shop):
        adapters, _ = shop
        assert await adapters.products.check_availability(1, 3) == {"available": True, "stock": 3}
        assert await adapters.products.check_availability(1, 4) == {"available": False, "stock": 3}
        assert await adapters.products.check_availability(999, 1) == {"available": False, "stock": 0}

    @pytest.mark.asyncio
    async def test_related_products_share_category(self, shop):
        adapters, _ = shop
        related = await adapters.products.get_related_products(1)
        assert [p["name"] for p in related] == ["Zip Hoodie"]

    @pytest.mark.asyncio
    async def test_categories(self, shop):
        adapters, _ = shop
        categories = await adapters.products.list_categories()
        assert {"name": "apparel", "slug": "apparel"} in categories
        assert {"name": "Bags", "slug": "bags"} in categories


class TestOrders:
    @pytest.mark.asyncio
    async def test_totals_with_flat_shipping(self, shop):
        adapters, _ = shop
        totals = await adapters.orders.calculate_totals([_line(1, 1, 25)])
        assert totals == {"subtotal": 25.0, "tax": 2.0, "shipping": 5.0, "total": 32.0}

    @pytest.mark.asyncio
    async def test_free_shipping_at_threshold(self, shop):
        adapters, _ = shop
        totals = await adapters.orders.calculate_totals([_line(1, 2, 25)])
        assert totals == {"subtotal": 50.0, "tax": 4.0, "shipping": 0.0, "total": 54.0}

    @pytest.mark.asyncio
    async def test_create_order_deducts_stock(self, shop):
        adapters, _ = shop
        order = await adapters.orders.create_order({"items": [_line(1, 3, 25)], "customer": {"name": "Ana"}})
        assert order["order_number"] == "ORD-000001"
        assert order["status"] == "pending"
        assert order["payment_status"] == "pending"
        assert order["totals"]["total"] == 81.0
        assert order["customer"]["name"] == "Ana"
        product = await adapters.products.get_product(1)
        assert product["stock"] == 0
        assert product["status"] == "out_of_stock"

    @pytest.mark.asyncio
    async def test_empty_order_rejected(self, shop):
        adapters, _ = shop
        with pytest.raises(EmptyCartError):
            await adapters.orders.create_order({"items": []})

    @pytest.mark.asyncio
    async def test_insufficient_stock_creates_nothing(self, shop):
        adapters, _ = shop
        with pytest.raises(InsufficientStockError):
            await adapters.orders.create_order({"items": [_line(2, 1, 55), _line(1, 9, 25)]})
        assert await adapters.orders.get_order(1) is None
        assert (await adapters.products.get_product(1))["stock"] == 3

    @pytest.mark.asyncio
    async def test_lookup_by_number_and_status_update(self, shop):
        adapters, _ = shop
        await adapters.orders.create_order({"items": [_line(2, 1, 55)]})
        assert (await adapters.orders.get_order("ord-000001"))["id"] == 1
        updated = await adapters.orders.update_order_status("ORD-000001", "shipped", notes="UPS")
        assert updated["status"] == "shipped"
        assert updated["notes"] == "UPS"
        assert await adapters.orders.update_order_status(42, "shipped") is None

    @pytest.mark.asyncio
    async def test_variant_lines_share_product_stock(self, shop):
        adapters, _ = shop
        medium = {**_line(1, 2, 25), "size": "M"}
        large = {**_line(1, 2, 25), "size": "L"}
        with pytest.raises(InsufficientStockError, match="Available: 3"):
            await adapters.orders.create_order({"items": [medium, large]})
        assert (await adapters.products.get_product(1))["stock"] == 3
        assert await adapters.orders.get_order(1) is None

    @pytest.mark.asyncio
    async def test_shipping_tapers_below_threshold(self, shop):
        adapters, _ = shop
        totals = await adapters.orders.calculate_totals([_line(1, 1, 46)])
        assert totals == {"subtotal": 46.0, "tax": 3.68, "shipping": 4.0, "total": 53.68}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", [1, 4.99, 18, 25])
    async def test_total_never_decreases_as_quantity_grows(self, shop, price):
        adapters, _ = shop
        previous = 0.0
        for quantity in range(1, 16):
            totals = await adapters.orders.calculate_totals(
                [_line(1, 1, 44), _line(2, quantity, price)]
            )
            assert totals["total"] >= previous
            previous = totals["total"]


class TestCustomers:
    @pytest.mark.asyncio
    async def test_upsert_by_email(self, shop):
        adapters, _ = shop
        first = await adapters.customers.get_or_create_customer({"email": "Ana@Example.com", "name": "Ana"})
        again = await adapters.customers.get_or_create_customer({"email": "ana@example.com"})
        assert first["id"] == again["id"]
        assert first["email"] == "ana@example.com"

    @pytest.mark.asyncio
    async def test_phone_is_normalized(self, shop):
        adapters, _ = shop
        first = await adapters.customers.get_or_create_customer({"phone": "+1 (555) 010-2000"})
        again = await adapters.customers.get_or_create_customer({"phone": "+15550102000"})
        assert first["id"] == again["id"]
        assert first["name"] == "Guest Customer"

    @pytest.mark.asyncio
    async def test_identifier_required(self, shop):
        adapters, _ = shop
        with pytest.raises(MissingFieldError):
            await adapters.customers.get_or_create_customer({"name": "Nobody"})

    @pytest.mark.asyncio
    async def test_order_history(self, shop):
        adapters, _ = shop
        customer = await adapters.customers.get_or_create_customer({"email": "bo@example.com"})
        await adapters.orders.create_order({"items": [_line(2, 1, 55)], "customer": customer})
        await adapters.orders.create_order({"items": [_line(3, 1, 18)], "customer": customer})
        history = await adapters.customers.get_order_history(customer["id"])
        assert [o["order_number"] for o in history] == ["ORD-000002", "ORD-000001"]
        recent = await adapters.orders.get_customer_orders(customer["id"], limit=1)
        assert [o["order_number"] for o in recent] == ["ORD-000002"]


class TestPayments:
    @pytest.mark.asyncio
    async def test_payment_link_attached_to_order(self, shop):
        adapters, _ = shop
        order = await adapters.orders.create_order({"items": [_line(2, 1, 55)]})
        payment = await adapters.payments.create_payment(
            {"amount": 5940, "currency": "USD", "order_id": order["id"]}
        )
        assert payment["id"].startswith("pay_")
        assert payment["payment_link"] == f"https://pay.test/checkout/{payment['id']}"
        stored = await adapters.orders.get_order(order["id"])
        assert stored["payment_id"] == payment["id"]
        assert await adapters.payments.verify_payment(payment["id"]) == {
            "status": "pending", "verified": False,
        }

    @pytest.mark.asyncio
    async def test_approved_receipt_marks_order_paid(self, shop):
        adapters, _ = shop
        order = await adapters.orders.create_order({"items": [_line(2, 1, 55)]})
        payment = await adapters.payments.create_payment({"amount": 5940, "order_id": order["id"]})
        result = await adapters.payments.process_receipt(
            order["id"], "receipt.png",
            {"decision": "approved", "confidence": 0.9, "reason": "ok", "status": "paid"},
        )
        assert result == {"verified": True, "status": "paid", "decision": "approved", "confidence": 0.9}
        stored = await adapters.orders.get_order(order["id"])
        assert stored["status"] == "paid"
        assert stored["payment_status"] == "paid"
        assert (await adapters.payments.verify_payment(payment["id"]))["verified"] is True

    @pytest.mark.asyncio
    async def test_pending_receipt_leaves_order_status(self, shop):
        adapters, _ = shop
        order = await adapters.orders.create_order({"items": [_line(2, 1, 55)]})
        result = await adapters.payments.process_receipt(
            order["order_number"], "receipt.png", {"decision": "pending", "status": "pending_verification"},
        )
        assert result["verified"] is False
        stored = await adapters.orders.get_order(order["id"])
        assert stored["status"] == "pending"
        assert stored["payment_status"] == "pending_verification"

    @pytest.mark.asyncio
    async def test_unknown_payment(self, shop):
        adapters, _ = shop
        assert await adapters.payments.verify_payment("pay_missing") == {
            "status": "not_found", "verified": False,
        }


class TestSQLDatabase:
    @pytest.mark.parametrize("url,expected", [
        ("sqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
        ("sqlite:///shop.db", "sqlite+aiosqlite:///shop.db"),
        ("sqlite+aiosqlite:///shop.db", "sqlite+aiosqlite:///shop.db"),
        ("postgresql+asyncpg://db/shop", "postgresql+asyncpg://db/shop"),
    ])
    def test_async_driver_url(self, url, expected):
        assert async_database_url(url) == expected

    @pytest.mark.asyncio
    async def test_schema_created_on_first_use(self):
        database = SQLDatabase("sqlite:///:memory:")
        adapters = create_sql_adapters(config=make_config(), database=database)
        try:
            assert await adapters.products.search_products("") == []
        finally:
            await database.close()

    @pytest.mark.asyncio
    async def test_concurrent_turns_on_file_database(self, tmp_path):
        database = SQLDatabase(f"sqlite:///{tmp_path / 'shop.db'}")
        adapters = create_sql_adapters(config=make_config(), database=database)
        try:
            first = await asyncio.gather(*(adapters.products.search_products("") for _ in range(5)))
            assert first == [[]] * 5
            for i in range(5):
                await database.add_product(f"Item {i}", 10 + i, stock=5)
            products = await asyncio.gather(*(
                adapters.products.get_product(i) for i in range(1, 6)
            ))
            assert sorted(p["price"] for p in products) == [10.0, 11.0, 12.0, 13.0, 14.0]
        finally:
            await database.close()
