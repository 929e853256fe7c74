"""OpenAI chat-completions backend with JSON mode and vision."""

import json
import logging
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from sales_agent.exceptions import LLMProviderError
from sales_agent.llm.base import CompletionOptions, LLMProvider
from sales_agent.llm.images import load_image_as_data_url

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """Text, structured and image completions through ``AsyncOpenAI``."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        vision_model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[Any] = None,
    ) -> None:
        self.model = model
        self.vision_model = vision_model or model
        self._client = client or AsyncOpenAI(
            api_key=api_key or None,
            base_url=base_url or None,
            timeout=timeout,
        )

    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> str:
        messages = [{"role": "user", "content": prompt}]
        return await self._chat(self.model, messages, options or {})

    async def complete_json(
        self,
        prompt: str,
        schema: dict[str, Any],
        options: Optional[CompletionOptions] = None,
    ) -> dict[str, Any]:
        json_prompt = (
            f"{prompt}\n\nRespond in valid JSON matching this schema:\n"
            f"{json.dumps(schema, indent=2)}"
        )
        messages = [{"role": "user", "content": json_prompt}]
        text = await self._chat(
            self.model, messages, options or {}, response_format={"type": "json_object"}
        )
        try:
            parsed = json.loads(text)
        except ValueError as exc:
            raise LLMProviderError(f"OpenAI returned invalid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise LLMProviderError("OpenAI JSON response was not an object")
        return parsed

    async def analyze_image(
        self, image_ref: str, prompt: str, options: Optional[CompletionOptions] = None
    ) -> str:
        if image_ref.startswith(("http://", "https://", "data:")):
            url = image_ref
        else:
            url = await load_image_as_data_url(image_ref)
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": url}},
                ],
            }
        ]
        return await self._chat(self.vision_model, messages, options or {})

    async def close(self) -> None:
        await self._client.close()

    async def _chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        options: CompletionOptions,
        **extra: Any,
    ) -> str:
        kwargs: dict[str, Any] = {"model": model, "messages": messages, **extra}
        if "temperature" in options:
            kwargs["temperature"] = options["temperature"]
        if options.get("max_tokens"):
            kwargs["max_tokens"] = options["max_tokens"]
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise LLMProviderError(f"OpenAI request failed: {exc}") from exc
        if not response.choices:
            raise LLMProviderError("OpenAI returned no choices")
        content = response.choices[0].message.content or ""
        logger.debug("OpenAI %s returned %d chars", model, len(content))
        return content.strip()
