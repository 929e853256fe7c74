"""Tests for the session aggregate and the session manager."""

import pytest

from sales_agent.config import DEFAULT_INTENTS, ConversationConfig
from sales_agent.conversation.session_manager import SessionManager
from sales_agent.schemas.session_schema import (
    Cart,
    CartItem,
    Role,
    Session,
    TurnRecord,
    make_line_id,
)
from sales_agent.session.memory import MemorySessionStore
from tests.conftest import make_config


def _config(max_history: int = 20):
    return make_config(conversation=ConversationConfig(
        max_history_length=max_history, session_ttl_seconds=900, history_window=6,
        greeting_message="Welcome!", intents=DEFAULT_INTENTS,
    ))


class RecordingStore(MemorySessionStore):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple] = []

    async def save(self, session_id, session):
        self.calls.append(("save", session_id))
        await super().save(session_id, session)

    async def update_ttl(self, session_id, ttl_seconds):
        self.calls.append(("update_ttl", session_id, ttl_seconds))
        await super().update_ttl(session_id, ttl_seconds)


class TestLineId:
    def test_defaults_for_missing_variants(self):
        assert make_line_id(7, None, None) == "7:default:default"

    def test_variant_in_key(self):
        assert make_line_id("7", "black", "M") == "7:black:M"


class TestSessionFromStore:
    def test_none_gives_fresh_session(self):
        session = Session.from_store("s1", None)
        assert session.id == "s1"
        assert session.history == []
        assert session.cart.items == []

    def test_non_dict_gives_fresh_session(self):
        assert Session.from_store("s1", "garbage").history == []

    def test_non_list_history_and_items_coerced(self):
        session = Session.from_store("s1", {"history": "oops", "cart": {"items": {"a": 1}}})
        assert session.history == []
        assert session.cart.items == []

    def test_malformed_entries_dropped(self):
        raw = {
            "history": [{"role": "user", "text": "hi"}, {"role": "robot"}, 42],
            "cart": {"items": [
                {"line_id": "1:default:default", "product_id": 1, "name": "Tee", "price": 25, "quantity": 1},
                {"name": "no ids"},
            ]},
        }
        session = Session.from_store("s1", raw)
        assert [turn.text for turn in session.history] == ["hi"]
        assert len(session.cart.items) == 1

    def test_camel_case_fields_accepted(self):
        raw = {
            "createdAt": "2024-01-01T00:00:00+00:00",
            "lastActivity": "2024-01-02T00:00:00+00:00",
            "cart": {"items": [
                {"lineId": "9:red:L", "productId": 9, "name": "Hoodie", "price": 55, "quantity": 2},
            ]},
        }
        session = Session.from_store("s1", raw)
        assert session.created_at == "2024-01-01T00:00:00+00:00"
        assert session.cart.items[0].line_id == "9:red:L"
        assert session.cart.items[0].product_id == 9

    def test_snake_case_on_store(self):
        session = Session.new("s1")
        session.cart.items.append(
            CartItem(line_id="1:default:default", product_id=1, name="Tee", price=25, quantity=1)
        )
        stored = session.to_store()
        assert stored["cart"]["items"][0]["line_id"] == "1:default:default"
        assert "last_activity" in stored

    def test_round_trip_through_store_shape(self):
        session = Session.new("s1")
        session.context["locale"] = "en"
        assert Session.from_store("s1", session.to_store()) == session


class TestCart:
    def test_summary_and_counts(self):
        cart = Cart(items=[
            CartItem(line_id="1:a:b", product_id=1, name="Tee", price=25, quantity=2),
            CartItem(line_id="2:a:b", product_id=2, name="Tote", price=10, quantity=1),
        ])
        assert cart.summary() == "Tee x2, Tote x1"
        assert cart.item_count() == 3
        assert cart.subtotal() == 60

    def test_empty_summary(self):
        assert Cart().summary() == "empty"


class TestSessionManager:
    @pytest.mark.asyncio
    async def test_load_never_returns_none(self):
        manager = SessionManager(MemorySessionStore(), _config())
        session = await manager.load("new")
        assert session.id == "new"

    def test_history_bounded_keeps_most_recent_in_order(self):
        manager = SessionManager(MemorySessionStore(), _config(max_history=5))
        session = Session.new("s1")
        for i in range(12):
            manager.append_message(session, Role.USER, f"m{i}")
            assert len(session.history) <= 5
        assert [turn.text for turn in session.history] == ["m7", "m8", "m9", "m10", "m11"]

    def test_append_accepts_role_string(self):
        manager = SessionManager(MemorySessionStore(), _config())
        session = Session.new("s1")
        manager.append_message(session, "assistant", "hello", {"intent": "greeting"})
        assert session.history[0].role == Role.ASSISTANT
        assert session.history[0].metadata == {"intent": "greeting"}

    def test_last_activity_never_moves_backwards(self):
        manager = SessionManager(MemorySessionStore(), _config())
        session = Session.new("s1")
        session.last_activity = "9999-01-01T00:00:00+00:00"
        manager.append_message(session, Role.USER, "hi")
        assert session.last_activity == "9999-01-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_save_always_refreshes_ttl(self):
        store = RecordingStore()
        manager = SessionManager(store, _config())
        await manager.save("s1", Session.new("s1"))
        assert store.calls == [("save", "s1"), ("update_ttl", "s1", 900)]

    @pytest.mark.asyncio
    async def test_save_retrims_history(self):
        store = MemorySessionStore()
        manager = SessionManager(store, _config(max_history=2))
        session = Session.new("s1")
        session.history.extend(TurnRecord(role=Role.USER, text=f"t{i}") for i in range(4))
        await manager.save("s1", session)
        raw = await store.get("s1")
        assert [turn["text"] for turn in raw["history"]] == ["t2", "t3"]

    @pytest.mark.asyncio
    async def test_load_trims_oversized_stored_history(self):
        store = MemorySessionStore()
        await store.save("s1", {"history": [{"role": "user", "text": f"t{i}"} for i in range(5)]})
        manager = SessionManager(store, _config(max_history=3))
        session = await manager.load("s1")
        assert [turn.text for turn in session.history] == ["t2", "t3", "t4"]

    def test_helpers(self):
        manager = SessionManager(MemorySessionStore(), _config())
        session = Session.new("s1")
        manager.set_customer(session, {"email": "a@b.c"})
        manager.set_context(session, {"channel": "web"})
        manager.set_context(session, {"locale": "en"})
        session.cart.items.append(
            CartItem(line_id="1:a:b", product_id=1, name="Tee", price=1, quantity=1)
        )
        manager.clear_cart(session)
        assert session.customer == {"email": "a@b.c"}
        assert session.context == {"channel": "web", "locale": "en"}
        assert session.cart.items == []
