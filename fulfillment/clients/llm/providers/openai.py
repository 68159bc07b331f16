"""OpenAI LLM provider: BaseLLMClient implementation + registry builder."""
from __future__ import annotations

import base64
import logging
import os
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from fulfillment.clients.llm.base import BaseLLMClient

logger = logging.getLogger(__name__)


class OpenAILLMClient(BaseLLMClient):
    """OpenAI-compatible client (gpt-4o-mini, gpt-4o, etc.)."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.0,
        timeout: float = 30.0,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._client = AsyncOpenAI(
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
        )

    @property
    def provider(self) -> str:
        return "openai"

    async def _create(self, messages: List[Dict[str, Any]], model: Optional[str] = None) -> str:
        response = await self._client.chat.completions.create(
            model=model or self._model,
            messages=messages,
            temperature=self._temperature,
        )
        return response.choices[0].message.content or ""

    async def complete(self, prompt: str, *, model: Optional[str] = None) -> str:
        return await self._create([{"role": "user", "content": prompt}], model)

    async def chat(self, messages: List[Dict[str, Any]]) -> str:
        """Native multi-turn chat with system-prompt support."""
        return await self._create(list(messages))

    async def describe_image(self, image: bytes, mime_type: str, prompt: str) -> str:
        data_url = f"data:{mime_type};base64,{base64.b64encode(image).decode('ascii')}"
        return await self._create([
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ],
            }
        ])

    async def test_connection(self) -> bool:
        try:
            await self._client.models.list()
            return True
        except OpenAIError as exc:
            logger.warning("OpenAI connection test failed: %s", exc)
            return False


def openai_builder(config: Dict[str, Any]) -> OpenAILLMClient:
    return OpenAILLMClient(
        model=config.get("model", "gpt-4o-mini"),
        api_key=config.get("api_key"),
        base_url=config.get("base_url"),
        temperature=float(config.get("temperature", 0.0)),
        timeout=float(config.get("timeout", 30.0)),
    )
