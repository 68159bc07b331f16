"""No-op LLM client used when no provider is configured."""
from __future__ import annotations

import json

from fulfillment.clients.llm.base import BaseLLMClient

_NOOP_REPLY = json.dumps({"intent": "CHITCHAT", "fields": {}, "reply_text": ""})


class NoOpLLMClient(BaseLLMClient):
    """Answers every prompt with an empty CHITCHAT classification."""

    @property
    def provider(self) -> str:
        return "noop"

    async def complete(self, prompt: str, *, model: str | None = None) -> str:
        return _NOOP_REPLY

    async def test_connection(self) -> bool:
        return False
