"""
Sales agent entry point.

Runs a chat loop against the configured model backend (OpenAI or Ollama)
with the in-memory catalog from the console demo, or the fully offline
console demo when no API keys are available.

Usage:
    Live model:   python main.py
    Console mode: python main.py console
    Scripted:     python main.py console shopping
"""

import asyncio
import logging
import sys

from sales_agent.adapters.memory import MemoryCommerceBackend, create_memory_adapters
from sales_agent.config import settings

logger = logging.getLogger(__name__)


async def _chat_loop() -> None:
    """Interactive chat using the configured backend and session store."""
    from console_demo import seed_catalog
    from sales_agent.orchestrator import SalesAgent

    backend = MemoryCommerceBackend()
    seed_catalog(backend)
    agent = SalesAgent.from_config(settings, adapters=create_memory_adapters(backend, settings))
    logger.info(
        "Sales agent '%s' started with %s backend", settings.agent_name, settings.llm.provider
    )

    try:
        while True:
            message = (await asyncio.to_thread(input, "you> ")).strip()
            if not message:
                continue
            if message.lower() in ("quit", "exit", "q"):
                break
            response = await agent.chat("cli", message)
            print(f"agent> {response.text}")
    finally:
        await agent.close()


def _run_live_mode() -> None:
    """Chat against the real model backend (requires API keys or a local Ollama)."""
    asyncio.run(_chat_loop())


def _run_console_mode(scenario: str = "") -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    if scenario:
        session.run_scenario(scenario)
    else:
        session.run()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode(sys.argv[2] if len(sys.argv) > 2 else "")
    else:
        _run_live_mode()
