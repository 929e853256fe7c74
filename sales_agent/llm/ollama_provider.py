"""Ollama backend over its HTTP ``/api/generate`` endpoint."""

import json
import logging
from typing import Any, Optional

import httpx

from sales_agent.exceptions import LLMProviderError
from sales_agent.llm.base import CompletionOptions, LLMProvider
from sales_agent.llm.images import load_image_base64
from sales_agent.utils import extract_json_block

logger = logging.getLogger(__name__)


class OllamaProvider(LLMProvider):
    """Local models served by Ollama. Vision uses a separate multimodal model."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:14b",
        vision_model: str = "llava",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.vision_model = vision_model
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> str:
        options = options or {}
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": self._model_options(options, default_temperature=0.7),
        }
        return await self._generate(payload)

    async def complete_json(
        self,
        prompt: str,
        schema: dict[str, Any],
        options: Optional[CompletionOptions] = None,
    ) -> dict[str, Any]:
        options = options or {}
        payload = {
            "model": self.model,
            "prompt": (
                f"{prompt}\n\nRespond in valid JSON format matching this schema:\n"
                f"{json.dumps(schema, indent=2)}"
            ),
            "format": "json",
            "stream": False,
            "options": self._model_options(options, default_temperature=0.3),
        }
        text = await self._generate(payload)
        parsed = extract_json_block(text)
        if parsed is None:
            raise LLMProviderError("Failed to parse JSON response from Ollama")
        return parsed

    async def analyze_image(
        self, image_ref: str, prompt: str, options: Optional[CompletionOptions] = None
    ) -> str:
        options = options or {}
        payload = {
            "model": self.vision_model,
            "prompt": prompt,
            "images": [await load_image_base64(image_ref)],
            "stream": False,
            "options": self._model_options(options, default_temperature=0.2),
        }
        return await self._generate(payload)

    async def close(self) -> None:
        await self._client.aclose()

    async def _generate(self, payload: dict[str, Any]) -> str:
        try:
            response = await self._client.post(f"{self.base_url}/api/generate", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise LLMProviderError(
                f"Ollama API error: {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise LLMProviderError(f"Ollama request failed: {exc}") from exc
        data = response.json()
        return str(data.get("response") or "").strip()

    @staticmethod
    def _model_options(options: CompletionOptions, default_temperature: float) -> dict[str, Any]:
        model_options: dict[str, Any] = {
            "temperature": options.get("temperature", default_temperature),
            "top_p": 0.9,
        }
        if options.get("max_tokens"):
            model_options["num_predict"] = options["max_tokens"]
        return model_options
