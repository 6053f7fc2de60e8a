from __future__ import annotations

from decimal import Decimal

from core.domain.entities.feed_event_entity import TradeEvent
from core.services.tick_buffer import TickBuffer


def trade(i: int) -> TradeEvent:
    return TradeEvent(symbol="AAPL", price=Decimal("150") + i, size=Decimal("1"), trade_time=1_700_000_000_000 + i)


def test_full_buffer_drops_and_counts(caplog):
    buf = TickBuffer(max_size=2)
    assert buf.put(trade(0))
    assert buf.put(trade(1))
    assert not buf.put(trade(2))
    assert not buf.put(trade(3))
    assert buf.dropped == 2
    assert buf.qsize() == 2
    # one warning per throttle window
    assert caplog.text.count("Tick buffer full") == 1


def test_drain_respects_item_bound_and_keeps_order():
    buf = TickBuffer(max_size=10)
    for i in range(5):
        buf.put(trade(i))
    first = buf.drain(max_items=3, budget_s=10)
    assert [t.trade_time for t in first] == [1_700_000_000_000 + i for i in range(3)]
    assert len(buf.drain(max_items=3, budget_s=10)) == 2
    assert buf.empty()
    assert buf.drain() == []


def test_zero_budget_still_returns_one_item():
    buf = TickBuffer(max_size=10)
    for i in range(3):
        buf.put(trade(i))
    assert len(buf.drain(max_items=10, budget_s=0)) == 1
