"""In-process TTL cache, used when no Redis URL is configured and in tests."""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Iterable, Optional, Set, Tuple

from fulfillment.infra.cache.base import BaseCache


class MemoryCache(BaseCache):
    """Dict-backed cache with lazy expiry. Not shared between processes."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: Dict[str, Tuple[str, Optional[float]]] = {}
        self._sets: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    def _expired(self, key: str) -> bool:
        entry = self._values.get(key)
        if entry is None:
            return True
        _, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            self._values.pop(key, None)
            return True
        return False

    def _deadline(self, ttl: Optional[int]) -> Optional[float]:
        return self._clock() + ttl if ttl else None

    async def get(self, key: str) -> Optional[str]:
        if self._expired(key):
            return None
        return self._values[key][0]

    async def set(self, key: str, value: str, *, ttl: Optional[int] = None) -> None:
        self._values[key] = (value, self._deadline(ttl))

    async def set_if_absent(self, key: str, value: str, *, ttl: Optional[int] = None) -> bool:
        async with self._lock:
            if not self._expired(key):
                return False
            self._values[key] = (value, self._deadline(ttl))
            return True

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._sets.pop(key, None)

    async def add_members(self, key: str, members: Iterable[str]) -> None:
        self._sets.setdefault(key, set()).update(members)

    async def remove_members(self, key: str, members: Iterable[str]) -> None:
        bucket = self._sets.get(key)
        if bucket is None:
            return
        bucket.difference_update(members)
        if not bucket:
            self._sets.pop(key, None)

    async def members(self, key: str) -> Set[str]:
        return set(self._sets.get(key, ()))

    def clear(self) -> None:
        self._values.clear()
        self._sets.clear()
