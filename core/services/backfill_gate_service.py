from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Tuple

from core.repositories.candle_repository import CandleRepository
from core.services.backfill_coordinator_service import BackfillCoordinator
from core.services.timeframe_service import MINUTE_TIMEFRAME

DAY_MS = 86_400_000


class BackfillGate:
    """
    Decides whether the live path may write a higher-timeframe candle.

    Decision order:
      1. a backfill is running for the asset        -> deny
      2. the asset is marked backfill-complete      -> approve
      3. heuristic: 1m history reaches back at least `min_history_days` AND the
         timeframe already has a row older than the start of today minus
         `recent_days`                              -> approve, else deny

    A marker that cannot be read counts as "cannot confirm", which denies the
    write: losing a little liveness is preferred to corrupting aggregates.
    Heuristic outcomes are memoised for `heuristic_ttl_s`; markers never are.
    """

    def __init__(
        self,
        *,
        coordinator: BackfillCoordinator,
        candle_repository: CandleRepository,
        min_history_days: float = 4.0,
        recent_days: float = 1.0,
        heuristic_ttl_s: float = 30.0,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._candles = candle_repository
        self._min_history_ms = int(float(min_history_days) * DAY_MS)
        self._recent_ms = int(float(recent_days) * DAY_MS)
        self._heuristic_ttl_s = float(heuristic_ttl_s)
        self._clock = clock
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._heuristic_memo: Dict[Tuple[int, str], Tuple[float, bool]] = {}

    async def is_approved_to_write(self, asset_id: int, timeframe: str, bucket_start: int) -> bool:
        try:
            if await self._coordinator.is_running(asset_id):
                self._logger.debug("Deny %s asset_id=%s bucket=%s: backfill running", timeframe, asset_id, bucket_start)
                return False
        except Exception as exc:
            self._logger.warning("Cannot read running marker for asset_id=%s, denying write: %s", asset_id, exc)
            return False

        try:
            if await self._coordinator.is_complete(asset_id):
                return True
        except Exception as exc:
            self._logger.warning("Cannot read complete marker for asset_id=%s, denying write: %s", asset_id, exc)
            return False

        return await self._heuristic(asset_id, timeframe)

    def forget(self, asset_id: int) -> None:
        """
        Drop memoised heuristic results for an asset.
        """
        for key in [k for k in self._heuristic_memo if k[0] == int(asset_id)]:
            self._heuristic_memo.pop(key, None)

    async def _heuristic(self, asset_id: int, timeframe: str) -> bool:
        key = (int(asset_id), timeframe)
        now_s = self._clock()
        cached = self._heuristic_memo.get(key)
        if cached is not None and now_s - cached[0] < self._heuristic_ttl_s:
            return cached[1]

        try:
            ok = await self._has_established_history(asset_id, timeframe, int(now_s * 1000))
        except Exception as exc:
            self._logger.warning("History check failed for asset_id=%s tf=%s, denying write: %s", asset_id, timeframe, exc)
            return False

        self._heuristic_memo[key] = (now_s, ok)
        if not ok:
            self._logger.debug("Deny %s asset_id=%s: history not established, leaving it to backfill", timeframe, asset_id)
        return ok

    async def _has_established_history(self, asset_id: int, timeframe: str, now_ms: int) -> bool:
        earliest = await self._candles.earliest_candle(asset_id, MINUTE_TIMEFRAME)
        if earliest is None or earliest.open_time > now_ms - self._min_history_ms:
            return False
        start_of_today = (now_ms // DAY_MS) * DAY_MS
        return await self._candles.has_candle_before(asset_id, timeframe, start_of_today - self._recent_ms)
