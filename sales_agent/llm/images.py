"""Loading receipt images referenced by URL or local path."""

import asyncio
import base64
import mimetypes
from pathlib import Path

import httpx

from sales_agent.exceptions import LLMProviderError


async def load_image_bytes(image_ref: str, timeout: float = 30.0) -> bytes:
    """Fetch an image from an http(s) URL or read it from disk."""
    if image_ref.startswith(("http://", "https://")):
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(image_ref)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise LLMProviderError(f"Unable to fetch image: {exc}") from exc
        return response.content
    path = Path(image_ref)
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        raise LLMProviderError(f"Unable to read image {image_ref}: {exc}") from exc


async def load_image_base64(image_ref: str) -> str:
    return base64.b64encode(await load_image_bytes(image_ref)).decode("ascii")


async def load_image_as_data_url(image_ref: str) -> str:
    mime, _ = mimetypes.guess_type(image_ref)
    encoded = await load_image_base64(image_ref)
    return f"data:{mime or 'image/jpeg'};base64,{encoded}"
