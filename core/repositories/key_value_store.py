from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """
    Minimal key-value capability used for advisory markers and the read cache.

    try_acquire is an atomic "set if absent with TTL". Markers built on it are
    advisory: they expire on their own and nothing blocks on them.
    Implementations may raise on backend failure; callers decide how to degrade.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str, *, ttl_s: Optional[int] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def try_acquire(self, key: str, *, ttl_s: int, value: str = "1") -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        raise NotImplementedError
