from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Literal, TypedDict


class LLMMessage(TypedDict):
    role: Literal["system", "user", "assistant"]
    content: str


class BaseLLMClient(ABC):
    @property
    @abstractmethod
    def provider(self) -> str:
        ...

    @abstractmethod
    async def complete(self, prompt: str, *, model: str | None = None) -> str:
        ...

    async def chat(self, messages: List[LLMMessage]) -> str:
        """Send a conversation with an optional system message.

        Default implementation flattens the messages into one prompt and calls
        ``complete()``. Providers with native system-prompt support override it.
        """
        parts: List[str] = []
        for msg in messages:
            role = msg.get("role", "user")
            content = (msg.get("content") or "").strip()
            if not content:
                continue
            if role == "system":
                parts.insert(0, f"[System instructions]\n{content}\n")
            else:
                parts.append(f"{role}: {content}")
        return await self.complete("\n".join(parts))

    async def describe_image(self, image: bytes, mime_type: str, prompt: str) -> str:
        """Answer *prompt* about an image. Providers without vision raise NotImplementedError."""
        raise NotImplementedError(f"{self.provider} does not support image input")

    @abstractmethod
    async def test_connection(self) -> bool:
        ...
