from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from core.domain.entities.candle_entity import CandleEntity
from core.domain.entities.ohlcv_entity import OHLCV
from core.repositories.candle_repository import CandleRepository
from core.services.candle_cache_service import CandleCacheService
from core.services.candle_merge_service import DELTA, SNAPSHOT, validate_mode
from core.services.timeframe_service import MINUTE_TIMEFRAME, TimeframeService


class CandleStoreService:
    """
    Write/read facade over the candle repository.

    Every successful write invalidates the read cache for each affected
    (asset_id, timeframe). Repository errors propagate to the caller, which owns
    the decision to log and drop the batch.
    """

    def __init__(
        self,
        *,
        candle_repository: CandleRepository,
        candle_cache: Optional[CandleCacheService] = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._repo = candle_repository
        self._cache = candle_cache
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @staticmethod
    def build_candles(timeframe: str, updates: Mapping[Tuple[int, int], OHLCV]) -> List[CandleEntity]:
        """
        Turn {(asset_id, bucket_start): OHLCV} into candle entities for one timeframe.
        """
        out: List[CandleEntity] = []
        for (asset_id, open_time), bar in updates.items():
            out.append(
                CandleEntity(
                    asset_id=int(asset_id),
                    timeframe=timeframe,
                    open_time=int(open_time),
                    close_time=TimeframeService.close_time(int(open_time), timeframe),
                    open=bar.open,
                    high=bar.high,
                    low=bar.low,
                    close=bar.close,
                    volume=bar.volume,
                )
            )
        return out

    async def upsert_minute(self, candles: Sequence[CandleEntity], *, mode: str = DELTA) -> int:
        if not candles:
            return 0
        affected = await self._repo.upsert_minute(candles, mode=validate_mode(mode))
        await self._invalidate(MINUTE_TIMEFRAME, candles)
        self._logger.debug("Upserted %d %s candles (mode=%s, affected=%d)", len(candles), MINUTE_TIMEFRAME, mode, affected)
        return affected

    async def upsert_aggregated(self, timeframe: str, candles: Sequence[CandleEntity], *, mode: str = SNAPSHOT) -> int:
        if not candles:
            return 0
        if timeframe == MINUTE_TIMEFRAME:
            raise ValueError("1m candles must go through upsert_minute")
        affected = await self._repo.upsert_aggregated(timeframe, candles, mode=validate_mode(mode))
        await self._invalidate(timeframe, candles)
        self._logger.debug("Upserted %d %s candles (mode=%s, affected=%d)", len(candles), timeframe, mode, affected)
        return affected

    async def latest_candle(self, asset_id: int, timeframe: str) -> Optional[CandleEntity]:
        return await self._repo.latest_candle(int(asset_id), timeframe)

    async def _invalidate(self, timeframe: str, candles: Sequence[CandleEntity]) -> None:
        if self._cache is None:
            return
        asset_ids: Dict[int, None] = dict.fromkeys(int(c.asset_id) for c in candles)
        for asset_id in asset_ids:
            await self._cache.invalidate(asset_id, timeframe)
