"""
Language model backend interface.

``complete`` is the only required capability. ``complete_json`` and
``analyze_image`` are optional: a provider advertises them simply by
defining the method, and callers check with ``supports_json`` /
``supports_vision`` before relying on them.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, TypedDict


class CompletionOptions(TypedDict, total=False):
    temperature: float
    max_tokens: int


class LLMProvider(ABC):
    """Base class for model backends."""

    @abstractmethod
    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> str:
        """Return a free-text completion for ``prompt``."""

    async def close(self) -> None:
        """Release network resources. No-op by default."""


def supports_json(llm: Any) -> bool:
    return callable(getattr(llm, "complete_json", None))


def supports_vision(llm: Any) -> bool:
    return callable(getattr(llm, "analyze_image", None))
