from typing import Optional

from sales_agent.config import AppConfig, settings
from sales_agent.llm.base import LLMProvider, supports_json, supports_vision
from sales_agent.llm.ollama_provider import OllamaProvider
from sales_agent.llm.openai_provider import OpenAIProvider


def build_llm_provider(config: Optional[AppConfig] = None) -> LLMProvider:
    """Create the model backend selected by ``LLM_PROVIDER``."""
    config = config or settings
    llm = config.llm
    if llm.provider == "ollama":
        return OllamaProvider(
            base_url=llm.base_url or "http://localhost:11434",
            model=llm.model,
            vision_model=llm.vision_model,
            timeout=llm.timeout_seconds,
        )
    return OpenAIProvider(
        model=llm.model,
        vision_model=llm.vision_model,
        api_key=llm.api_key or None,
        base_url=llm.base_url or None,
        timeout=llm.timeout_seconds,
    )


__all__ = [
    "LLMProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "build_llm_provider",
    "supports_json",
    "supports_vision",
]
