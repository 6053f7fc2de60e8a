from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from core.domain.entities.candle_entity import CandleEntity


class CandleRepository(ABC):
    """
    Abstraction over durable candle storage.

    Upserts are keyed by (asset_id, timeframe, open_time) and must follow the
    candle merge contract (core.services.candle_merge_service) for the given mode.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None: ...

    @abstractmethod
    async def upsert_minute(self, candles: Sequence[CandleEntity], *, mode: str = "delta") -> int:
        """
        Upsert 1-minute candles. Returns the number of rows inserted or modified.
        """
        raise NotImplementedError

    @abstractmethod
    async def upsert_aggregated(self, timeframe: str, candles: Sequence[CandleEntity], *, mode: str = "snapshot") -> int:
        """
        Upsert candles of one higher timeframe. Returns the number of rows inserted or modified.
        """
        raise NotImplementedError

    @abstractmethod
    async def latest_candle(self, asset_id: int, timeframe: str) -> Optional[CandleEntity]:
        raise NotImplementedError

    @abstractmethod
    async def earliest_candle(self, asset_id: int, timeframe: str) -> Optional[CandleEntity]:
        raise NotImplementedError

    @abstractmethod
    async def has_candle_before(self, asset_id: int, timeframe: str, before_ms: int) -> bool:
        raise NotImplementedError
