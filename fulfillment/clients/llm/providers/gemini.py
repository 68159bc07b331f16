"""Google Gemini LLM provider: BaseLLMClient implementation + registry builder."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from fulfillment.clients.llm.base import BaseLLMClient

logger = logging.getLogger(__name__)


class GeminiLLMClient(BaseLLMClient):
    """Google Gemini client (gemini-2.0-flash, gemini-1.5-pro, etc.)."""

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        *,
        api_key: Optional[str] = None,
        temperature: float = 0.0,
    ) -> None:
        self._model = model
        self._temperature = temperature
        resolved_key = api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        self._client = genai.Client(api_key=resolved_key)

    @property
    def provider(self) -> str:
        return "gemini"

    async def complete(self, prompt: str, *, model: Optional[str] = None) -> str:
        response = await self._client.aio.models.generate_content(
            model=model or self._model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(temperature=self._temperature),
        )
        return response.text or ""

    async def chat(self, messages: List[Dict[str, Any]]) -> str:
        """Native multi-turn chat with system-instruction support."""
        system_parts: List[str] = []
        history: List[genai_types.Content] = []

        for msg in messages:
            role = msg.get("role", "user")
            content = (msg.get("content") or "").strip()
            if not content:
                continue
            if role == "system":
                system_parts.append(content)
            else:
                history.append(genai_types.Content(
                    role="model" if role == "assistant" else "user",
                    parts=[genai_types.Part.from_text(text=content)],
                ))

        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=history,
            config=genai_types.GenerateContentConfig(
                temperature=self._temperature,
                system_instruction="\n\n".join(system_parts) or None,
            ),
        )
        return response.text or ""

    async def describe_image(self, image: bytes, mime_type: str, prompt: str) -> str:
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=[genai_types.Part.from_bytes(data=image, mime_type=mime_type), prompt],
        )
        return response.text or ""

    async def test_connection(self) -> bool:
        try:
            await self.complete("Say OK")
            return True
        except genai_errors.APIError as exc:
            logger.warning("Gemini connection test failed: %s", exc)
            return False


def gemini_builder(config: Dict[str, Any]) -> GeminiLLMClient:
    return GeminiLLMClient(
        model=config.get("model", "gemini-2.0-flash"),
        api_key=config.get("api_key"),
        temperature=float(config.get("temperature", 0.0)),
    )
