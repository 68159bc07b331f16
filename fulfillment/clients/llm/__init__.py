"""
LLM clients: base, config, registry.

Register a provider with default_registry.register(provider, builder);
build_llm_client() picks one from env.
"""
from fulfillment.clients.llm.base import BaseLLMClient, LLMMessage
from fulfillment.clients.llm.config import LLMConfig, load_llm_config
from fulfillment.clients.llm.registry import LLMRegistry, build_llm_client, default_registry

__all__ = [
    "BaseLLMClient",
    "LLMMessage",
    "LLMConfig",
    "load_llm_config",
    "LLMRegistry",
    "default_registry",
    "build_llm_client",
]
