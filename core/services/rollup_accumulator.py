from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Dict, Iterable, Mapping, Set, Tuple

from core.domain.entities.ohlcv_entity import OHLCV
from core.services.backfill_gate_service import BackfillGate
from core.services.candle_merge_service import SNAPSHOT
from core.services.candle_store_service import CandleStoreService
from core.services.timeframe_service import TimeframeService

BucketKey = Tuple[int, int]  # (asset_id, bucket_start_ms)
TouchedByTimeframe = Dict[str, Set[BucketKey]]


class BucketState(str, Enum):
    ABSENT = "absent"
    OPEN = "open"
    CLOSED = "closed"


class RollupAccumulator:
    """
    In-memory higher-timeframe candles fed from completed minute bars.

    Per (asset, timeframe, bucket) the lifecycle is ABSENT -> OPEN -> CLOSED:
      - the first minute bar of a bucket opens it
      - once bucket_start + duration <= latest observed minute it is closed,
        flushed (if the backfill gate approves) and evicted
      - a closed bucket never reopens: minute bars that fall into a bucket at or
        before the asset's closed watermark are ignored for that timeframe

    Only the drain task touches the maps. Other tasks ask for a purge through
    request_reset(), which the drain task applies before its next batch.
    """

    def __init__(
        self,
        *,
        timeframes: Iterable[str],
        candle_store: CandleStoreService,
        backfill_gate: BackfillGate,
        open_flush_interval_s: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self._durations: Dict[str, int] = TimeframeService.rollup_config(timeframes)
        self._store = candle_store
        self._gate = backfill_gate
        self._open_flush_interval_s = float(open_flush_interval_s)
        self._clock = clock
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._acc: Dict[str, Dict[BucketKey, OHLCV]] = {tf: {} for tf in self._durations}
        self._closed_watermark: Dict[Tuple[int, str], int] = {}
        self._last_open_write: Dict[Tuple[str, int, int], float] = {}

        self._reset_lock = threading.Lock()
        self._pending_resets: Set[int] = set()

    @property
    def timeframes(self) -> list[str]:
        return list(self._durations)

    def open_count(self) -> int:
        return sum(len(acc) for acc in self._acc.values())

    def get(self, asset_id: int, timeframe: str, bucket_start: int) -> OHLCV | None:
        bar = self._acc.get(timeframe, {}).get((int(asset_id), int(bucket_start)))
        return bar.copy() if bar is not None else None

    def state(self, asset_id: int, timeframe: str, bucket_start: int) -> BucketState:
        key = (int(asset_id), int(bucket_start))
        if key in self._acc.get(timeframe, {}):
            return BucketState.OPEN
        watermark = self._closed_watermark.get((int(asset_id), timeframe))
        if watermark is not None and int(bucket_start) <= watermark:
            return BucketState.CLOSED
        return BucketState.ABSENT

    # ---------------- Accumulation ----------------

    def rollup(self, minute_map: Mapping[BucketKey, OHLCV]) -> TouchedByTimeframe:
        """
        Merge minute bars into every configured higher timeframe.

        Returns the bucket keys touched per timeframe.
        """
        touched: TouchedByTimeframe = {tf: set() for tf in self._durations}
        for (asset_id, minute_ts), bar in sorted(minute_map.items(), key=lambda kv: kv[0][1]):
            for tf in self._durations:
                bucket = TimeframeService.floor(minute_ts, tf)
                if self.state(asset_id, tf, bucket) is BucketState.CLOSED:
                    self._logger.debug(
                        "Ignoring late minute %s for closed %s bucket asset_id=%s bucket=%s",
                        minute_ts,
                        tf,
                        asset_id,
                        bucket,
                    )
                    continue
                key = (int(asset_id), bucket)
                acc = self._acc[tf]
                if key not in acc:
                    acc[key] = bar.copy()
                else:
                    acc[key].merge_bar(bar)
                touched[tf].add(key)
        return touched

    # ---------------- Persistence ----------------

    async def persist_open(self, touched_by_tf: Mapping[str, Set[BucketKey]], latest_minute_ts: int) -> int:
        """
        Snapshot still-open buckets touched by the last batch.

        Each bucket is written at most once per open_flush_interval_s and only
        when the backfill gate approves. Returns the number of candles sent.
        """
        written = 0
        now = self._clock()
        for tf, keys in (touched_by_tf or {}).items():
            if tf not in self._durations or not keys:
                continue
            acc = self._acc[tf]
            to_persist: Dict[BucketKey, OHLCV] = {}
            for key in keys:
                asset_id, bucket = key
                if TimeframeService.is_closed(bucket, tf, latest_minute_ts):
                    continue
                data = acc.get(key)
                if data is None:
                    continue
                last = self._last_open_write.get((tf, asset_id, bucket))
                if last is not None and now - last < self._open_flush_interval_s:
                    continue
                if not await self._gate.is_approved_to_write(asset_id, tf, bucket):
                    self._logger.debug("Skipping open %s bucket asset_id=%s: backfill gate denied", tf, asset_id)
                    continue
                to_persist[key] = data.copy()

            if not to_persist:
                continue
            if await self._save(tf, to_persist, phase="open"):
                for asset_id, bucket in to_persist:
                    self._last_open_write[(tf, asset_id, bucket)] = now
                written += len(to_persist)
        return written

    async def flush_closed(self, latest_minute_ts: int) -> int:
        """
        Evict every closed bucket; write the final snapshot where the gate approves.

        A denied bucket is evicted without a write: the historical resampler owns
        it from then on. Returns the number of candles sent.
        """
        written = 0
        for tf in self._durations:
            acc = self._acc[tf]
            closed = [k for k in acc if TimeframeService.is_closed(k[1], tf, latest_minute_ts)]
            if not closed:
                continue

            evicted: Dict[BucketKey, OHLCV] = {}
            for key in closed:
                asset_id, bucket = key
                evicted[key] = acc.pop(key)
                self._last_open_write.pop((tf, asset_id, bucket), None)
                wm_key = (asset_id, tf)
                self._closed_watermark[wm_key] = max(bucket, self._closed_watermark.get(wm_key, bucket))

            to_persist: Dict[BucketKey, OHLCV] = {}
            for key, data in evicted.items():
                asset_id, bucket = key
                if await self._gate.is_approved_to_write(asset_id, tf, bucket):
                    to_persist[key] = data
                else:
                    self._logger.debug(
                        "Evicted closed %s bucket asset_id=%s bucket=%s without write: backfill owns it",
                        tf,
                        asset_id,
                        bucket,
                    )

            if to_persist and await self._save(tf, to_persist, phase="closed"):
                written += len(to_persist)
                self._logger.info("Persisted %d closed %s buckets", len(to_persist), tf)
        return written

    async def _save(self, timeframe: str, updates: Dict[BucketKey, OHLCV], *, phase: str) -> bool:
        candles = CandleStoreService.build_candles(timeframe, updates)
        try:
            await self._store.upsert_aggregated(timeframe, candles, mode=SNAPSHOT)
            return True
        except Exception as exc:
            self._logger.exception(
                "Failed to persist %s %s buckets (batch_size=%d): %s",
                phase,
                timeframe,
                len(candles),
                exc,
            )
            return False

    # ---------------- Resets ----------------

    def reset_for_asset(self, asset_id: int) -> int:
        """
        Purge every in-memory bucket of an asset. Returns the number of buckets dropped.
        """
        aid = int(asset_id)
        removed = 0
        for tf, acc in self._acc.items():
            for key in [k for k in acc if k[0] == aid]:
                acc.pop(key, None)
                self._last_open_write.pop((tf, aid, key[1]), None)
                removed += 1
        self._gate.forget(aid)
        if removed:
            self._logger.info("Cleared %d higher-timeframe buckets for asset_id=%s", removed, aid)
        return removed

    def request_reset(self, asset_id: int) -> None:
        """
        Queue a reset to be applied by the drain task. Safe from any task or thread.
        """
        with self._reset_lock:
            self._pending_resets.add(int(asset_id))

    def apply_pending_resets(self) -> Set[int]:
        with self._reset_lock:
            pending, self._pending_resets = self._pending_resets, set()
        for asset_id in pending:
            self.reset_for_asset(asset_id)
        return pending
