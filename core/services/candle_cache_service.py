from __future__ import annotations

import json
import logging
from typing import Dict, Iterable, List, Optional

from core.domain.entities.candle_entity import CandleEntity
from core.repositories.key_value_store import KeyValueStore

# TTL by timeframe (seconds)
CACHE_TTL_BY_TIMEFRAME: Dict[str, int] = {
    "1m": 60 * 60 * 6,
    "5m": 60 * 60 * 12,
    "15m": 60 * 60 * 24,
    "30m": 60 * 60 * 24,
    "1h": 60 * 60 * 24 * 3,
    "4h": 60 * 60 * 24 * 7,
    "1d": 60 * 60 * 24 * 14,
}
DEFAULT_TTL_S = 60 * 60


class CandleCacheService:
    """
    Read-through cache of recent candles per (asset_id, timeframe).

    The write path only ever calls invalidate(); readers repopulate with set().
    Backend failures are logged and reported as a miss / False, never raised.
    """

    def __init__(
        self,
        *,
        store: KeyValueStore,
        timeframes: Optional[Iterable[str]] = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._timeframes = list(timeframes) if timeframes is not None else list(CACHE_TTL_BY_TIMEFRAME)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @staticmethod
    def key(asset_id: int, timeframe: str) -> str:
        return f"candles:{int(asset_id)}:{timeframe}"

    async def get(self, asset_id: int, timeframe: str) -> Optional[List[CandleEntity]]:
        key = self.key(asset_id, timeframe)
        try:
            raw = await self._store.get(key)
        except Exception as exc:
            self._logger.warning("Cache get failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return [CandleEntity.model_validate(d) for d in json.loads(raw)]
        except (ValueError, TypeError) as exc:
            self._logger.warning("Dropping unreadable cache entry %s: %s", key, exc)
            return None

    async def set(
        self,
        asset_id: int,
        timeframe: str,
        candles: List[CandleEntity],
        *,
        ttl_s: Optional[int] = None,
    ) -> bool:
        key = self.key(asset_id, timeframe)
        ordered = sorted(candles, key=lambda c: c.open_time)
        payload = json.dumps([c.to_dict() for c in ordered])
        ttl = int(ttl_s or CACHE_TTL_BY_TIMEFRAME.get(timeframe, DEFAULT_TTL_S))
        try:
            await self._store.set(key, payload, ttl_s=ttl)
            return True
        except Exception as exc:
            self._logger.warning("Cache set failed for %s: %s", key, exc)
            return False

    async def invalidate(self, asset_id: int, timeframe: Optional[str] = None) -> bool:
        """
        Invalidate one (asset, timeframe) entry, or every timeframe when timeframe is None.
        """
        tfs = [timeframe] if timeframe else self._timeframes
        keys = [self.key(asset_id, tf) for tf in tfs]
        try:
            await self._store.delete(*keys)
            return True
        except Exception as exc:
            self._logger.warning("Cache invalidate failed for asset_id=%s: %s", asset_id, exc)
            return False
