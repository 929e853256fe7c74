"""Shared test fixtures and helpers."""

import dataclasses
from typing import Any, Optional, Sequence

import pytest

from sales_agent.adapters.base import CommerceAdapters
from sales_agent.adapters.memory import MemoryCommerceBackend, create_memory_adapters
from sales_agent.config import (
    DEFAULT_INTENTS,
    AppConfig,
    BusinessConfig,
    ConversationConfig,
    LLMConfig,
    OrderConfig,
    PaymentConfig,
    RateLimitConfig,
    SessionStoreConfig,
)
from sales_agent.orchestrator import SalesAgent
from sales_agent.session.memory import MemorySessionStore


def make_config(**overrides: Any) -> AppConfig:
    """Deterministic config independent of the process environment."""
    config = AppConfig(
        business=BusinessConfig(
            name="Test Store", description="Apparel shop", currency="USD",
            supported_languages=("en",), timezone="UTC",
        ),
        conversation=ConversationConfig(
            max_history_length=20, session_ttl_seconds=3600, history_window=6,
            greeting_message="Welcome!", intents=DEFAULT_INTENTS,
        ),
        llm=LLMConfig(
            provider="openai", model="gpt-4o-mini", vision_model="gpt-4o-mini",
            base_url="", api_key="", temperature=0.7, max_tokens=500,
            classification_temperature=0.2, vision_temperature=0.1,
            timeout_seconds=30, system_prompt="You are a helpful sales assistant.",
        ),
        orders=OrderConfig(tax_rate=0.08, free_shipping_threshold=50, default_shipping_cost=5),
        payments=PaymentConfig(
            auto_approve_threshold=0.85, auto_reject_threshold=0.35,
            vision_prompt="Check this receipt.",
            checkout_base_url="https://pay.test/checkout",
        ),
        session_store=SessionStoreConfig(
            backend="memory", redis_url="redis://localhost:6379", key_prefix="test:session:",
        ),
        rate_limit=RateLimitConfig(max_requests=30, window_seconds=60, max_tracked_sessions=100),
        log_level="INFO",
        agent_name="test-agent",
    )
    return dataclasses.replace(config, **overrides)


def intent(name: str, confidence: float = 0.9, **entities: Any) -> dict[str, Any]:
    """Raw classifier payload as a model would return it."""
    return {"intent": name, "confidence": confidence, "entities": entities}


class ScriptedLLM:
    """
    Stub backend with ``complete`` and ``complete_json``.

    ``complete_json`` pops queued payloads (an Exception instance is raised
    instead); ``complete`` returns ``reply`` or raises it when it is an
    Exception. Every prompt is recorded.
    """

    def __init__(self, intents: Sequence[Any] = (), reply: Any = "") -> None:
        self.intents = list(intents)
        self.reply = reply
        self.prompts: list[str] = []
        self.options: list[Optional[dict]] = []

    async def complete(self, prompt: str, options: Optional[dict] = None) -> str:
        self.prompts.append(prompt)
        self.options.append(options)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply

    async def complete_json(
        self, prompt: str, schema: dict, options: Optional[dict] = None
    ) -> Any:
        self.prompts.append(prompt)
        self.options.append(options)
        payload = self.intents.pop(0) if self.intents else intent("unclear", 0.0)
        if isinstance(payload, Exception):
            raise payload
        return payload


class VisionLLM(ScriptedLLM):
    """ScriptedLLM that can also look at images."""

    def __init__(self, vision: Any = "", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.vision = vision
        self.images: list[str] = []

    async def analyze_image(self, image_ref: str, prompt: str, options: Optional[dict] = None) -> str:
        self.images.append(image_ref)
        self.prompts.append(prompt)
        self.options.append(options)
        if isinstance(self.vision, Exception):
            raise self.vision
        return self.vision


class TextOnlyLLM:
    """Backend with ``complete`` only; returns queued texts in order."""

    def __init__(self, texts: Sequence[Any] = ()) -> None:
        self.texts = list(texts)

    async def complete(self, prompt: str, options: Optional[dict] = None) -> str:
        text = self.texts.pop(0) if self.texts else ""
        if isinstance(text, Exception):
            raise text
        return text


def make_agent(
    llm: Any,
    adapters: Optional[CommerceAdapters] = None,
    store: Optional[MemorySessionStore] = None,
    config: Optional[AppConfig] = None,
    middleware: Optional[list] = None,
) -> SalesAgent:
    config = config or make_config()
    return SalesAgent(
        llm=llm,
        adapters=adapters,
        session_store=store if store is not None else MemorySessionStore(default_ttl=3600),
        config=config,
        middleware=middleware,
    )


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def backend():
    backend = MemoryCommerceBackend()
    backend.add_product(
        "Classic T-Shirt", 25, stock=50, category="apparel",
        description="Soft cotton t-shirt", colors=["black", "white"], sizes=["M", "L"],
    )
    return backend


@pytest.fixture
def adapters(backend, config):
    return create_memory_adapters(backend, config)


@pytest.fixture
def store():
    return MemorySessionStore(default_ttl=3600)
