"""LLM provider implementations. Registration happens in fulfillment.clients.llm.registry."""
from fulfillment.clients.llm.providers.gemini import GeminiLLMClient, gemini_builder
from fulfillment.clients.llm.providers.noop import NoOpLLMClient
from fulfillment.clients.llm.providers.openai import OpenAILLMClient, openai_builder

__all__ = [
    "GeminiLLMClient",
    "NoOpLLMClient",
    "OpenAILLMClient",
    "gemini_builder",
    "openai_builder",
]
