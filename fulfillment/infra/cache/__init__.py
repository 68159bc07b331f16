"""
fulfillment.infra.cache – volatile cache backends.

build_cache(config) returns RedisCache when REDIS_URL is set, else MemoryCache.
"""
from __future__ import annotations

import logging
from typing import Optional

from fulfillment.config import RedisConfig, load_redis_config
from fulfillment.infra.cache.base import BaseCache
from fulfillment.infra.cache.memory import MemoryCache
from fulfillment.infra.cache.redis_cache import RedisCache

logger = logging.getLogger(__name__)


def build_cache(config: Optional[RedisConfig] = None) -> BaseCache:
    if config is None:
        config = load_redis_config()
    if config.enabled:
        return RedisCache(config)
    logger.info("REDIS_URL not set; using in-process MemoryCache")
    return MemoryCache()


__all__ = ["BaseCache", "MemoryCache", "RedisCache", "build_cache"]
