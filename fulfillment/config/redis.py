"""
fulfillment.config.redis – volatile cache (Redis) config.

Env vars: REDIS_URL, REDIS_SOCKET_TIMEOUT, REDIS_KEY_PREFIX.
An empty REDIS_URL disables Redis; an in-process cache is used instead.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RedisConfig:
    url: Optional[str] = None
    socket_timeout: int = 5
    key_prefix: str = "fulfillment:"

    def __post_init__(self) -> None:
        if self.url is not None and not (
            self.url.startswith("redis://") or self.url.startswith("rediss://") or self.url.startswith("unix://")
        ):
            raise ValueError("REDIS_URL must start with redis://, rediss:// or unix://")
        if not isinstance(self.socket_timeout, int) or self.socket_timeout < 1:
            raise ValueError(f"socket_timeout must be a positive integer, got {self.socket_timeout!r}")

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @classmethod
    def from_env(cls, **overrides: object) -> RedisConfig:
        raw_url = overrides.get("url", os.environ.get("REDIS_URL", ""))
        url = str(raw_url).strip() if raw_url else None
        timeout = int(overrides.get("socket_timeout") or os.environ.get("REDIS_SOCKET_TIMEOUT", "5"))
        prefix = str(overrides.get("key_prefix") or os.environ.get("REDIS_KEY_PREFIX", "fulfillment:"))
        return cls(url=url or None, socket_timeout=timeout, key_prefix=prefix)


def load_redis_config(**overrides: object) -> RedisConfig:
    return RedisConfig.from_env(**overrides)
