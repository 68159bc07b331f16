"""
LLM provider registry: map provider name -> build client from config dict.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from fulfillment.clients.llm.base import BaseLLMClient
from fulfillment.clients.llm.config import LLMConfig, load_llm_config

logger = logging.getLogger(__name__)


class LLMRegistry:
    """Maps provider id to a builder that takes a config dict and returns BaseLLMClient."""

    def __init__(self) -> None:
        self._builders: Dict[str, Callable[[Dict[str, Any]], BaseLLMClient]] = {}

    def register(self, provider: str, builder: Callable[[Dict[str, Any]], BaseLLMClient]) -> None:
        self._builders[provider] = builder

    def get(self, provider: str) -> Callable[[Dict[str, Any]], BaseLLMClient] | None:
        return self._builders.get(provider)

    def build(self, provider: str, config: Dict[str, Any]) -> BaseLLMClient:
        """Raises KeyError for an unknown provider."""
        builder = self._builders.get(provider)
        if builder is None:
            raise KeyError(f"Unknown LLM provider: {provider!r}. Registered: {list(self._builders)}")
        return builder(config)


default_registry = LLMRegistry()

from fulfillment.clients.llm.providers.gemini import gemini_builder  # noqa: E402
from fulfillment.clients.llm.providers.noop import NoOpLLMClient  # noqa: E402
from fulfillment.clients.llm.providers.openai import openai_builder  # noqa: E402

default_registry.register("openai", openai_builder)
default_registry.register("gemini", gemini_builder)


def build_llm_client(config: Optional[LLMConfig] = None) -> BaseLLMClient:
    """Build the configured provider, or NoOpLLMClient when no key is set."""
    if config is None:
        config = load_llm_config()
    if config.provider is None or not config.api_key:
        logger.warning("No LLM provider configured; message parsing is disabled")
        return NoOpLLMClient()
    client = default_registry.build(config.provider, config.to_dict())
    logger.info("LLM client ready provider=%s model=%s", config.provider, config.resolved_model)
    return client
