"""
fulfillment.clients.llm.config – provider selection from env.

Env vars: LLM_PROVIDER (openai | gemini, optional), LLM_MODEL, OPENAI_API_KEY,
GEMINI_API_KEY / GOOGLE_API_KEY, LLM_TEMPERATURE, LLM_TIMEOUT.
"""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

_DEFAULT_MODELS = {"openai": "gpt-4o-mini", "gemini": "gemini-2.0-flash"}


@dataclass(frozen=True)
class LLMConfig:
    provider: Optional[str] = None
    """None means no provider is configured; callers fall back to NoOpLLMClient."""

    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.0
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.provider is not None and self.provider not in _DEFAULT_MODELS:
            raise ValueError(f"LLM_PROVIDER must be one of {sorted(_DEFAULT_MODELS)}, got {self.provider!r}")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError("LLM_TEMPERATURE must be between 0 and 2")

    @property
    def resolved_model(self) -> Optional[str]:
        if self.provider is None:
            return None
        return self.model or _DEFAULT_MODELS[self.provider]

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        if self.resolved_model:
            data["model"] = self.resolved_model
        return data

    @classmethod
    def from_env(cls) -> LLMConfig:
        provider = (os.environ.get("LLM_PROVIDER") or "").strip().lower() or None
        openai_key = os.environ.get("OPENAI_API_KEY")
        gemini_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        if provider is None:
            if openai_key:
                provider = "openai"
            elif gemini_key:
                provider = "gemini"
        api_key = {"openai": openai_key, "gemini": gemini_key}.get(provider or "")
        return cls(
            provider=provider,
            model=os.environ.get("LLM_MODEL") or None,
            api_key=api_key,
            base_url=os.environ.get("OPENAI_BASE_URL") or None,
            temperature=float(os.environ.get("LLM_TEMPERATURE", "0")),
            timeout=float(os.environ.get("LLM_TIMEOUT", "30")),
        )


def load_llm_config() -> LLMConfig:
    return LLMConfig.from_env()
