"""
Offline console demo: runs a full shopping conversation without any API keys.

Drives the real orchestrator, session manager, action dispatcher, receipt
verification and reply templates against in-memory adapters. The model
backend is replaced by ``DemoLLMProvider``, a keyword classifier that never
writes free text, so every reply comes from the deterministic templates.

Usage:
    python console_demo.py
    python console_demo.py --scenario shopping
    python console_demo.py --scenario receipt
"""

import argparse
import asyncio
import json
import re
from typing import Any, Optional

from sales_agent.adapters.memory import MemoryCommerceBackend, create_memory_adapters
from sales_agent.config import settings
from sales_agent.middleware import RateLimiter, RequestLogger
from sales_agent.orchestrator import SalesAgent
from sales_agent.schemas.conversation_schema import ChatResponse

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

_MESSAGE_LINE = re.compile(r'^Message: "(.*)"$', re.MULTILINE)
_ORDER_REF = re.compile(r"\b(ORD-\d+|\d{1,6})\b", re.IGNORECASE)
_QUANTITY = re.compile(r"\b(\d{1,3})\b")
_SIZE = re.compile(r"\bsize\s+(\w+)", re.IGNORECASE)
_COLORS = ("black", "white", "navy", "red", "blue", "green", "grey")

# (intent, keywords) checked in order; first hit wins
_INTENT_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("submit_payment_receipt", ("receipt", "proof of payment", "i paid")),
    ("track_order", ("track", "where is", "status of")),
    ("checkout", ("checkout", "check out", "place the order")),
    ("remove_from_cart", ("remove", "take out", "empty my cart")),
    ("view_cart", ("my cart", "view cart", "what's in", "total")),
    ("add_to_cart", ("add", "i'll take", "buy")),
    ("product_inquiry", ("tell me about", "details", "more about")),
    ("browse_products", ("show", "browse", "looking for", "do you have")),
    ("complaint", ("broken", "refund", "complain", "wrong item")),
    ("greeting", ("hello", "hi ", "hey", "good morning")),
]


class DemoLLMProvider:
    """
    Rule-based stand-in for a model backend.

    Implements ``complete_json`` (intent classification) and ``analyze_image``
    (receipt scoring). ``complete`` returns an empty string so replies fall
    through to the deterministic templates.
    """

    def __init__(self, catalog_terms: tuple[str, ...] = (), receipt_score: float = 0.92) -> None:
        self.catalog_terms = catalog_terms
        self.receipt_score = receipt_score

    async def complete(self, prompt: str, options: Optional[dict] = None) -> str:
        return ""

    async def complete_json(
        self, prompt: str, schema: dict[str, Any], options: Optional[dict] = None
    ) -> dict[str, Any]:
        match = _MESSAGE_LINE.search(prompt)
        message = match.group(1) if match else ""
        return self.classify(message)

    async def analyze_image(self, image_ref: str, prompt: str, options: Optional[dict] = None) -> str:
        return json.dumps({
            "validity_score": self.receipt_score,
            "validity": "valid" if self.receipt_score >= 0.5 else "invalid",
            "reason": "Amount and payment reference match the order.",
        })

    def classify(self, message: str) -> dict[str, Any]:
        lower = f"{message.lower()} "
        intent = next(
            (name for name, keywords in _INTENT_RULES if any(k in lower for k in keywords)),
            "unclear",
        )
        return {
            "intent": intent,
            "confidence": 0.9 if intent != "unclear" else 0.3,
            "entities": self._entities(intent, lower),
        }

    def _entities(self, intent: str, lower: str) -> dict[str, Any]:
        entities: dict[str, Any] = {}
        product_type = next((term for term in self.catalog_terms if term in lower), None)
        if product_type:
            entities["product_type"] = product_type
        color = next((c for c in _COLORS if c in lower), None)
        if color:
            entities["color"] = color
        size = _SIZE.search(lower)
        if size:
            entities["size"] = size.group(1).upper()
        if intent == "add_to_cart":
            quantity = _QUANTITY.search(lower)
            if quantity:
                entities["quantity"] = int(quantity.group(1))
        if intent in ("track_order", "submit_payment_receipt"):
            order_ref = _ORDER_REF.search(lower)
            if order_ref:
                entities["order_id"] = order_ref.group(1).upper()
        return entities


def seed_catalog(backend: MemoryCommerceBackend) -> None:
    backend.add_product(
        "Classic T-Shirt", 25, stock=50, category="apparel",
        description="Soft cotton t-shirt", colors=["black", "white", "navy"],
        sizes=["S", "M", "L", "XL"],
    )
    backend.add_product(
        "Zip Hoodie", 55, stock=20, category="apparel",
        description="Fleece-lined hoodie", colors=["grey", "black"], sizes=["M", "L"],
    )
    backend.add_product(
        "Canvas Tote", 18, stock=100, category="accessories",
        description="Everyday tote bag",
    )


def build_demo_agent() -> SalesAgent:
    """Agent wired to seeded in-memory adapters and the rule-based backend."""
    backend = MemoryCommerceBackend()
    seed_catalog(backend)
    llm = DemoLLMProvider(catalog_terms=("t-shirt", "hoodie", "tote"))
    return SalesAgent(
        llm=llm,
        adapters=create_memory_adapters(backend),
        middleware=[RequestLogger(level="warning"), RateLimiter.from_config()],
    )


class ConsoleSession:
    """Plays a shopping conversation through the agent in the terminal."""

    SCENARIOS: dict[str, list[tuple[str, dict[str, Any]]]] = {
        "shopping": [
            ("hello there", {}),
            ("show me t-shirts", {}),
            ("add 1 t-shirt in black size M", {}),
            ("what's in my cart?", {}),
            ("checkout please", {"customer": {"name": "Jamie Doe", "email": "jamie@example.com"}}),
            ("where is my order ORD-000001?", {}),
        ],
        "receipt": [
            ("add 2 hoodie", {}),
            ("checkout", {"customer": {"name": "Sam Lee", "phone": "+1 (555) 010-2000"}}),
            (
                "here is my receipt for ORD-000001",
                {"receipt_url": "https://example.com/receipts/ORD-000001.png"},
            ),
            ("track ORD-000001", {}),
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(self, session_id: str = "console-demo") -> None:
        self.agent = build_demo_agent()
        self.session_id = session_id

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[Agent]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return
        asyncio.run(self._play(scenario, steps))

    def run(self) -> None:
        asyncio.run(self._interactive())

    async def _play(self, scenario: str, steps: list[tuple[str, dict[str, Any]]]) -> None:
        self._banner(f"Scenario: {scenario}")
        for message, metadata in steps:
            print(f"\n{BLUE}[Customer] {RESET}{message}")
            await self._turn(message, metadata)
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  Scenario '{scenario}' complete.{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        await self.agent.close()

    async def _interactive(self) -> None:
        self._banner("Console Demo")
        print(f"{BOLD}  Type 'quit' to exit{RESET}\n")
        while True:
            user_input = (await asyncio.to_thread(input, f"\n{BLUE}[Customer] {RESET}")).strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                break
            if len(user_input) > self.MAX_INPUT_LENGTH:
                self.agent_say("That was quite long. Could you keep it brief for me?")
                continue
            await self._turn(user_input, {})
        await self.agent.close()

    async def _turn(self, message: str, metadata: dict[str, Any]) -> ChatResponse:
        response = await self.agent.chat(self.session_id, message, metadata)
        self.agent_say(response.text)
        self.system_log(f"Intent: {response.intent} ({response.confidence:.2f})")
        if response.session is not None:
            cart = response.session.cart.get("items") or []
            self.system_log(f"Cart lines: {len(cart)}")
        if response.error:
            self.system_log(f"{YELLOW}Error: {response.error}{RESET}")
        return response

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  SALES AGENT - {title}{RESET}")
        print(f"{BOLD}  Business: {settings.business.name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
