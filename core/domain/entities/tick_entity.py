from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Tick:
    """
    A resolved trade ready for aggregation.

    Ticks are consumed immediately by the minute aggregator and never stored.
    trade_time is epoch milliseconds (UTC).
    """

    asset_id: int
    price: Decimal
    size: Decimal
    trade_time: int
