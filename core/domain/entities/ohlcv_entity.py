from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class OHLCV:
    """
    Running OHLCV accumulator shared by the minute aggregator and the roll-up.

    open is set once, high/low only widen, close follows the latest input and
    volume is additive. Inputs must be folded in chronological order.
    """

    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    close: Optional[Decimal] = None
    volume: Decimal = Decimal("0")

    def fold_trade(self, price: Decimal, size: Decimal) -> None:
        if self.open is None:
            self.open = price
        self.high = price if self.high is None else max(self.high, price)
        self.low = price if self.low is None else min(self.low, price)
        self.close = price
        self.volume += size

    def merge_bar(self, bar: "OHLCV") -> None:
        if self.open is None:
            self.open = bar.open
        if bar.high is not None:
            self.high = bar.high if self.high is None else max(self.high, bar.high)
        if bar.low is not None:
            self.low = bar.low if self.low is None else min(self.low, bar.low)
        if bar.close is not None:
            self.close = bar.close
        self.volume += bar.volume

    def copy(self) -> "OHLCV":
        return OHLCV(self.open, self.high, self.low, self.close, self.volume)
