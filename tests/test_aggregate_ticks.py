from __future__ import annotations

from decimal import Decimal

import pytest

from core.domain.entities.feed_event_entity import TradeEvent
from core.services.asset_cache_service import AssetCache
from core.services.trading_hours_service import TradingHoursService
from core.usecases.aggregate_ticks_use_case import AggregateTicksUseCase
from tests.fakes import asset, utc_ms


def trade(symbol: str, ts: int, price: str, size: str) -> TradeEvent:
    return TradeEvent(symbol=symbol, price=Decimal(price), size=Decimal(size), trade_time=ts)


@pytest.fixture
def snapshot():
    cache = AssetCache()
    cache.merge([asset(1, "AAPL"), asset(2, "BTCUSD", "crypto")])
    return cache.snapshot()


@pytest.fixture
def aggregator():
    return AggregateTicksUseCase(trading_hours=TradingHoursService())


def test_three_ticks_make_one_minute_bar(aggregator, snapshot):
    events = [
        trade("AAPL", utc_ms(14, 30, 5), "150.0", "10"),
        trade("AAPL", utc_ms(14, 30, 40), "151.0", "5"),
        trade("AAPL", utc_ms(14, 30, 55), "149.5", "20"),
    ]
    minute_map, latest = aggregator.execute(events, snapshot)

    assert latest == utc_ms(14, 30)
    bar = minute_map[(1, utc_ms(14, 30))]
    assert bar.open == Decimal("150.0")
    assert bar.high == Decimal("151.0")
    assert bar.low == Decimal("149.5")
    assert bar.close == Decimal("149.5")
    assert bar.volume == Decimal("35")


def test_unknown_symbols_and_bad_prices_are_dropped(aggregator, snapshot):
    events = [
        trade("MSFT", utc_ms(14, 31), "400", "1"),
        trade("AAPL", utc_ms(14, 31), "0", "1"),
        trade("AAPL", utc_ms(14, 31), "-1", "1"),
    ]
    minute_map, latest = aggregator.execute(events, snapshot)
    assert minute_map == {}
    assert latest is None


def test_outside_session_drops_equities_but_keeps_crypto(aggregator, snapshot):
    pre_market = utc_ms(13, 0)
    events = [trade("AAPL", pre_market, "150", "1"), trade("BTCUSD", pre_market, "60000", "0.5")]
    minute_map, latest = aggregator.execute(events, snapshot)
    assert list(minute_map) == [(2, pre_market)]
    assert latest == pre_market


def test_latest_minute_spans_assets_and_minutes(aggregator, snapshot):
    events = [
        trade("AAPL", utc_ms(14, 32, 1), "150", "1"),
        trade("BTCUSD", utc_ms(14, 31, 59), "60000", "1"),
        trade("AAPL", utc_ms(14, 30, 1), "149", "1"),
    ]
    minute_map, latest = aggregator.execute(events, snapshot)
    assert len(minute_map) == 3
    assert latest == utc_ms(14, 32)
