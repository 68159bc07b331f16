"""Redis-backed cache (redis-py asyncio) with retry."""
from __future__ import annotations

import asyncio
import functools
import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Set, TypeVar, cast

from redis import asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from fulfillment.core.exceptions import CacheError
from fulfillment.infra.cache.base import BaseCache

if TYPE_CHECKING:
    from fulfillment.config import RedisConfig

logger = logging.getLogger(__name__)

_F = TypeVar("_F", bound=Callable[..., Any])
_RETRYABLE = (RedisConnectionError, RedisTimeoutError, asyncio.TimeoutError)
_MAX_RETRIES = 2
_BASE_BACKOFF = 0.2


def _retry(func: _F) -> _F:
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        last_exc: Exception = RuntimeError("unreachable")
        for attempt in range(1, _MAX_RETRIES + 2):
            try:
                return await func(*args, **kwargs)
            except _RETRYABLE as exc:
                last_exc = exc
            except RedisError as exc:
                raise CacheError(f"Redis '{func.__name__}' failed: {exc}", cause=exc) from exc
            if attempt <= _MAX_RETRIES:
                delay = min(_BASE_BACKOFF * (2 ** (attempt - 1)), 2.0)
                logger.warning("Redis %s attempt %d/%d failed (%s), retry in %.1fs", func.__name__, attempt, _MAX_RETRIES, last_exc, delay)
                await asyncio.sleep(delay)
        raise CacheError(f"Redis '{func.__name__}' failed after {_MAX_RETRIES} retries: {last_exc}", cause=last_exc)
    return cast(_F, wrapper)


class RedisCache(BaseCache):
    """All methods raise CacheError once retries are exhausted."""

    def __init__(self, config: "RedisConfig") -> None:
        if not config.url:
            raise ValueError("RedisCache requires REDIS_URL")
        self._prefix = config.key_prefix
        self._client = aioredis.from_url(
            config.url,
            decode_responses=True,
            socket_timeout=config.socket_timeout,
            socket_connect_timeout=config.socket_timeout,
        )
        logger.info("RedisCache initialised prefix=%s", self._prefix)

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    @_retry
    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(self._k(key))

    @_retry
    async def set(self, key: str, value: str, *, ttl: Optional[int] = None) -> None:
        await self._client.set(self._k(key), value, ex=ttl)

    @_retry
    async def set_if_absent(self, key: str, value: str, *, ttl: Optional[int] = None) -> bool:
        return bool(await self._client.set(self._k(key), value, ex=ttl, nx=True))

    @_retry
    async def delete(self, key: str) -> None:
        await self._client.delete(self._k(key))

    @_retry
    async def add_members(self, key: str, members: Iterable[str]) -> None:
        members = list(members)
        if members:
            await self._client.sadd(self._k(key), *members)

    @_retry
    async def remove_members(self, key: str, members: Iterable[str]) -> None:
        members = list(members)
        if members:
            await self._client.srem(self._k(key), *members)

    @_retry
    async def members(self, key: str) -> Set[str]:
        return set(await self._client.smembers(self._k(key)))

    async def close(self) -> None:
        await self._client.aclose()
        logger.debug("RedisCache: client closed.")
