"""Tests for the OpenAI and Ollama model backends and the provider factory."""

import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from sales_agent.config import LLMConfig
from sales_agent.exceptions import LLMProviderError
from sales_agent.llm import OllamaProvider, OpenAIProvider, build_llm_provider, supports_json, supports_vision
from tests.conftest import make_config


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def openai_client():
    client = AsyncMock()
    client.chat.completions.create = AsyncMock(return_value=_completion("  Hello there  "))
    return client


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_complete_passes_options(self, openai_client):
        provider = OpenAIProvider(model="gpt-4o-mini", client=openai_client)
        text = await provider.complete("Say hi", {"temperature": 0.2, "max_tokens": 50})
        assert text == "Hello there"
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [{"role": "user", "content": "Say hi"}]
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_complete_json_uses_json_mode(self, openai_client):
        openai_client.chat.completions.create.return_value = _completion('{"intent": "greeting"}')
        provider = OpenAIProvider(client=openai_client)
        result = await provider.complete_json("Classify", {"type": "object"})
        assert result == {"intent": "greeting"}
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "temperature" not in kwargs

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["not json", "[1, 2]"])
    async def test_complete_json_rejects_non_objects(self, openai_client, content):
        openai_client.chat.completions.create.return_value = _completion(content)
        provider = OpenAIProvider(client=openai_client)
        with pytest.raises(LLMProviderError):
            await provider.complete_json("Classify", {})

    @pytest.mark.asyncio
    async def test_sdk_errors_wrapped(self, openai_client):
        openai_client.chat.completions.create.side_effect = openai.OpenAIError("quota exceeded")
        provider = OpenAIProvider(client=openai_client)
        with pytest.raises(LLMProviderError, match="quota exceeded"):
            await provider.complete("hi")

    @pytest.mark.asyncio
    async def test_no_choices(self, openai_client):
        openai_client.chat.completions.create.return_value = SimpleNamespace(choices=[])
        with pytest.raises(LLMProviderError, match="no choices"):
            await OpenAIProvider(client=openai_client).complete("hi")

    @pytest.mark.asyncio
    async def test_remote_image_sent_to_vision_model(self, openai_client):
        provider = OpenAIProvider(model="gpt-4o-mini", vision_model="gpt-4o", client=openai_client)
        await provider.analyze_image("https://img.test/r.png", "Check it", {"temperature": 0.1})
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        content = kwargs["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "Check it"}
        assert content[1] == {"type": "image_url", "image_url": {"url": "https://img.test/r.png"}}

    @pytest.mark.asyncio
    async def test_local_image_becomes_data_url(self, openai_client, tmp_path):
        image = tmp_path / "receipt.png"
        image.write_bytes(b"\x89PNG")
        await OpenAIProvider(client=openai_client).analyze_image(str(image), "Check it")
        url = openai_client.chat.completions.create.call_args.kwargs["messages"][0]["content"][1]["image_url"]["url"]
        assert url == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode("ascii")

    @pytest.mark.asyncio
    async def test_missing_local_image(self, openai_client, tmp_path):
        with pytest.raises(LLMProviderError, match="Unable to read image"):
            await OpenAIProvider(client=openai_client).analyze_image(str(tmp_path / "nope.png"), "x")

    def test_capabilities(self, openai_client):
        provider = OpenAIProvider(client=openai_client)
        assert supports_json(provider)
        assert supports_vision(provider)


def _ollama(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaProvider(base_url="http://ollama.test/", client=client, **kwargs)


class TestOllamaProvider:
    @pytest.mark.asyncio
    async def test_complete(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"response": " Hi! "})

        provider = _ollama(handler, model="llama3")
        assert await provider.complete("hello", {"temperature": 0.4, "max_tokens": 64}) == "Hi!"
        assert seen[0]["model"] == "llama3"
        assert seen[0]["stream"] is False
        assert seen[0]["options"] == {"temperature": 0.4, "top_p": 0.9, "num_predict": 64}

    @pytest.mark.asyncio
    async def test_complete_json(self):
        seen = []

        def handler(request):
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200, json={"response": 'Here: {"intent": "view_cart"}'})

        result = await _ollama(handler).complete_json("Classify", {"type": "object"})
        assert result == {"intent": "view_cart"}
        url, payload = seen[0]
        assert url == "http://ollama.test/api/generate"
        assert payload["format"] == "json"
        assert payload["options"]["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_unparseable_json(self):
        provider = _ollama(lambda request: httpx.Response(200, json={"response": "no idea"}))
        with pytest.raises(LLMProviderError, match="parse JSON"):
            await provider.complete_json("Classify", {})

    @pytest.mark.asyncio
    async def test_http_status_error(self):
        provider = _ollama(lambda request: httpx.Response(503))
        with pytest.raises(LLMProviderError, match="503"):
            await provider.complete("hello")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(LLMProviderError, match="request failed"):
            await _ollama(handler).complete("hello")

    @pytest.mark.asyncio
    async def test_image_sent_base64_to_vision_model(self, tmp_path):
        image = tmp_path / "receipt.jpg"
        image.write_bytes(b"jpeg-bytes")
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"response": '{"validity_score": 0.9}'})

        text = await _ollama(handler, vision_model="llava").analyze_image(str(image), "Check it")
        assert text == '{"validity_score": 0.9}'
        assert seen[0]["model"] == "llava"
        assert seen[0]["images"] == [base64.b64encode(b"jpeg-bytes").decode("ascii")]
        assert seen[0]["options"]["temperature"] == 0.2


class TestBuildProvider:
    def test_openai_by_default(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        provider = build_llm_provider(make_config())
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o-mini"

    def test_ollama(self):
        llm = LLMConfig(
            provider="ollama", model="qwen2.5:14b", vision_model="llava", base_url="",
            api_key="", temperature=0.7, max_tokens=500, classification_temperature=0.2,
            vision_temperature=0.1, timeout_seconds=30, system_prompt="x",
        )
        provider = build_llm_provider(make_config(llm=llm))
        assert isinstance(provider, OllamaProvider)
        assert provider.base_url == "http://localhost:11434"
        assert provider.vision_model == "llava"
