from __future__ import annotations

from decimal import Decimal
from typing import Optional

from core.domain.entities.base_entity import MongoEntity


class CandleEntity(MongoEntity):
    """
    Represents an OHLCV candle stored in MongoDB.

    Identity is (asset_id, timeframe, open_time). open_time is the bucket start in
    epoch milliseconds (UTC) and close_time is the last millisecond of the bucket.

    1-minute candles go to their own collection for write density; every higher
    timeframe shares a second collection. Both obey the same merge contract.
    """

    asset_id: int
    timeframe: str

    open_time: int
    close_time: int

    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    close: Optional[Decimal] = None

    volume: Decimal = Decimal("0")
    trade_count: Optional[int] = None
    vwap: Optional[Decimal] = None

    @property
    def key(self) -> tuple[int, str, int]:
        return (int(self.asset_id), str(self.timeframe), int(self.open_time))
