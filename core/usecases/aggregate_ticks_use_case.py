from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Tuple

from core.domain.entities.feed_event_entity import TradeEvent
from core.domain.entities.ohlcv_entity import OHLCV
from core.domain.entities.tick_entity import Tick
from core.services.asset_cache_service import AssetSnapshot
from core.services.timeframe_service import TimeframeService
from core.services.trading_hours_service import TradingHoursService

MinuteMap = Dict[Tuple[int, int], OHLCV]


class AggregateTicksUseCase:
    """
    Folds a batch of trades into 1-minute OHLCV bars keyed by (asset_id, minute_open_time).

    Behavior:
      - Trades for symbols not in the snapshot are dropped (subscription race).
      - Session-bound asset classes outside regular trading hours are dropped.
      - Trades are folded in arrival order: first price opens, last price closes.
      - Returns the bars plus the latest minute seen (None when nothing was kept).
    """

    def __init__(
        self,
        *,
        trading_hours: TradingHoursService,
        logger: logging.Logger | None = None,
    ) -> None:
        self._hours = trading_hours
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def resolve(self, event: TradeEvent, assets: AssetSnapshot) -> Optional[Tick]:
        asset_id = assets.resolve(event.symbol)
        if asset_id is None:
            self._logger.debug("Dropping trade for unsubscribed symbol=%s", event.symbol)
            return None
        if event.price is None or event.price <= 0 or event.trade_time is None:
            return None
        if not self._hours.accepts(assets.asset_class(asset_id), event.trade_time):
            return None
        return Tick(asset_id=asset_id, price=event.price, size=event.size, trade_time=int(event.trade_time))

    def execute(self, events: Iterable[TradeEvent], assets: AssetSnapshot) -> Tuple[MinuteMap, Optional[int]]:
        minute_map: MinuteMap = {}
        latest: Optional[int] = None

        for event in events:
            tick = self.resolve(event, assets)
            if tick is None:
                continue
            minute = TimeframeService.floor_minute(tick.trade_time)
            key = (tick.asset_id, minute)
            bar = minute_map.get(key)
            if bar is None:
                bar = minute_map[key] = OHLCV()
            bar.fold_trade(tick.price, tick.size)
            latest = minute if latest is None else max(latest, minute)

        return minute_map, latest
