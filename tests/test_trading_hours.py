from __future__ import annotations

from core.services.trading_hours_service import TradingHoursService
from tests.fakes import utc_ms


def _hours() -> TradingHoursService:
    return TradingHoursService(session_bound_classes=["us_equity", "us_option"])


def test_regular_session_bounds_in_new_york_time():
    hours = _hours()
    # 2024-03-05 is before the DST switch: New York is UTC-5.
    assert not hours.is_regular_trading_hours(utc_ms(14, 29, 59))
    assert hours.is_regular_trading_hours(utc_ms(14, 30))
    assert hours.is_regular_trading_hours(utc_ms(20, 59, 59))
    assert not hours.is_regular_trading_hours(utc_ms(21, 0))


def test_daylight_saving_shifts_the_utc_window():
    hours = _hours()
    # 2024-03-12: New York is UTC-4, so the open is 13:30 UTC.
    assert hours.is_regular_trading_hours(utc_ms(13, 30, day=12))
    assert not hours.is_regular_trading_hours(utc_ms(20, 0, day=12))


def test_weekend_is_closed():
    # 2024-03-09 is a Saturday.
    assert not _hours().is_regular_trading_hours(utc_ms(15, 0, day=9))


def test_always_on_classes_pass_any_time():
    hours = _hours()
    assert hours.accepts("crypto", utc_ms(3, 0, day=9))
    assert not hours.accepts("us_equity", utc_ms(3, 0))
    assert hours.accepts("US_EQUITY", utc_ms(15, 0))
    assert hours.accepts(None, utc_ms(3, 0))
