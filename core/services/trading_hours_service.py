from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo


def _parse_hhmm(value: str) -> time:
    hh, mm = str(value).strip().split(":", 1)
    return time(int(hh), int(mm))


class TradingHoursService:
    """
    Regular-trading-hours filter for session-bound asset classes.

    A session is Monday-Friday, [open, close) in the exchange's local time zone.
    Exchange holidays are not modelled; a tick printed on a holiday is kept.
    Always-on classes (anything not listed as session-bound) always pass.
    """

    def __init__(
        self,
        *,
        session_bound_classes: Iterable[str] = ("us_equity", "us_option"),
        tz_name: str = "America/New_York",
        session_open: str = "09:30",
        session_close: str = "16:00",
    ) -> None:
        self._session_bound = {str(c).strip().lower() for c in session_bound_classes if str(c).strip()}
        self._tz = ZoneInfo(tz_name)
        self._open = _parse_hhmm(session_open)
        self._close = _parse_hhmm(session_close)

    def is_session_bound(self, asset_class: Optional[str]) -> bool:
        return (asset_class or "").strip().lower() in self._session_bound

    def is_regular_trading_hours(self, ts_ms: int) -> bool:
        local = datetime.fromtimestamp(int(ts_ms) / 1000, tz=timezone.utc).astimezone(self._tz)
        if local.weekday() > 4:
            return False
        return self._open <= local.time() < self._close

    def accepts(self, asset_class: Optional[str], ts_ms: int) -> bool:
        """
        True when a tick of this asset class at ts_ms may enter an official candle.
        """
        if not self.is_session_bound(asset_class):
            return True
        return self.is_regular_trading_hours(ts_ms)
