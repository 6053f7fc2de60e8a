from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from core.domain.entities.feed_event_entity import TradeEvent
from core.services.asset_cache_service import AssetCache
from core.services.candle_merge_service import DELTA
from core.services.candle_store_service import CandleStoreService
from core.services.rollup_accumulator import RollupAccumulator
from core.services.timeframe_service import MINUTE_TIMEFRAME
from core.usecases.aggregate_ticks_use_case import AggregateTicksUseCase


@dataclass
class BatchResult:
    ticks: int
    minute_bars: int
    minutes_written: bool
    open_written: int = 0
    closed_written: int = 0
    latest_minute_ts: Optional[int] = None


class ProcessTickBatchUseCase:
    """
    Runs one drained batch through the pipeline:

      trades -> 1m bars -> upsert 1m (delta, never gated)
             -> roll-up -> persist open buckets -> flush closed buckets

    Pending accumulator resets are applied first so a re-added asset starts clean.
    A failed 1m write is logged and dropped; later batches re-cover open minutes.
    """

    def __init__(
        self,
        *,
        asset_cache: AssetCache,
        aggregator: AggregateTicksUseCase,
        rollup: RollupAccumulator,
        candle_store: CandleStoreService,
        logger: logging.Logger | None = None,
    ) -> None:
        self._assets = asset_cache
        self._aggregator = aggregator
        self._rollup = rollup
        self._store = candle_store
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def execute(self, events: List[TradeEvent]) -> BatchResult:
        self._rollup.apply_pending_resets()

        minute_map, latest = self._aggregator.execute(events, self._assets.snapshot())
        result = BatchResult(ticks=len(events), minute_bars=len(minute_map), minutes_written=False, latest_minute_ts=latest)
        if not minute_map or latest is None:
            return result

        candles = CandleStoreService.build_candles(MINUTE_TIMEFRAME, minute_map)
        try:
            await self._store.upsert_minute(candles, mode=DELTA)
            result.minutes_written = True
        except Exception as exc:
            self._logger.exception(
                "Failed to persist %s candles (batch_size=%d): %s",
                MINUTE_TIMEFRAME,
                len(candles),
                exc,
            )

        touched = self._rollup.rollup(minute_map)
        result.open_written = await self._rollup.persist_open(touched, latest)
        result.closed_written = await self._rollup.flush_closed(latest)
        return result
