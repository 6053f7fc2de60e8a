from __future__ import annotations

from typing import Optional

from redis.asyncio import Redis

from core.repositories.key_value_store import KeyValueStore


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed key-value store for backfill markers and the candle cache.

    try_acquire maps onto SET NX EX, so acquisition and TTL are atomic.
    """

    def __init__(self, client: Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, *, ttl_s: Optional[int] = None) -> None:
        await self._redis.set(key, value, ex=int(ttl_s) if ttl_s else None)

    async def try_acquire(self, key: str, *, ttl_s: int, value: str = "1") -> bool:
        return bool(await self._redis.set(key, value, nx=True, ex=int(ttl_s)))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._redis.delete(*keys))

    async def close(self) -> None:
        await self._redis.aclose()
