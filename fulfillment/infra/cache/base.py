"""Volatile key/value + set cache used for presence, draft sessions and notice flags."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Set


class BaseCache(ABC):
    """Async cache contract. Values are strings; TTLs are in seconds."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, *, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, *, ttl: Optional[int] = None) -> bool:
        """Store *value* only when *key* is missing. Returns True if it was stored."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def add_members(self, key: str, members: Iterable[str]) -> None:
        ...

    @abstractmethod
    async def remove_members(self, key: str, members: Iterable[str]) -> None:
        ...

    @abstractmethod
    async def members(self, key: str) -> Set[str]:
        ...

    async def close(self) -> None:
        return None
