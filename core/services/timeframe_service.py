from __future__ import annotations

import re
from typing import Dict, Iterable, List

ONE_MINUTE_MS = 60_000
MINUTE_TIMEFRAME = "1m"

_UNIT_MINUTES = {"m": 1, "h": 60, "d": 1440}
_TF_RE = re.compile(r"^(\d+)([mhd])$")


class TimeframeService:
    """
    Timeframe parsing and bucket arithmetic.

    Buckets are floored on integer minutes since the epoch, so every timestamp
    must already be UTC epoch milliseconds. No calendar math is involved: a "1d"
    bucket starts at 00:00 UTC.
    """

    @staticmethod
    def minutes(timeframe: str) -> int:
        m = _TF_RE.match((timeframe or "").strip().lower())
        if not m:
            raise ValueError(f"unsupported timeframe: {timeframe!r}")
        n = int(m.group(1))
        if n <= 0:
            raise ValueError(f"unsupported timeframe: {timeframe!r}")
        return n * _UNIT_MINUTES[m.group(2)]

    @classmethod
    def duration_ms(cls, timeframe: str) -> int:
        return cls.minutes(timeframe) * ONE_MINUTE_MS

    @staticmethod
    def floor_minute(ts_ms: int) -> int:
        return (int(ts_ms) // ONE_MINUTE_MS) * ONE_MINUTE_MS

    @classmethod
    def floor(cls, ts_ms: int, timeframe: str) -> int:
        size = cls.minutes(timeframe)
        total_min = int(ts_ms) // ONE_MINUTE_MS
        return (total_min // size) * size * ONE_MINUTE_MS

    @classmethod
    def close_time(cls, open_time: int, timeframe: str) -> int:
        return int(open_time) + cls.duration_ms(timeframe) - 1

    @classmethod
    def is_closed(cls, bucket_start: int, timeframe: str, latest_minute_ts: int) -> bool:
        """
        A bucket is closed once bucket_start + duration <= latest observed minute.
        """
        return int(bucket_start) + cls.duration_ms(timeframe) <= int(latest_minute_ts)

    @classmethod
    def rollup_config(cls, timeframes: Iterable[str]) -> Dict[str, int]:
        """
        Normalize the configured roll-up timeframes into {timeframe: duration_ms}.

        The 1-minute timeframe and duplicates are skipped; order follows duration.
        """
        out: Dict[str, int] = {}
        for tf in timeframes:
            key = str(tf).strip().lower()
            if not key:
                continue
            minutes = cls.minutes(key)
            if minutes <= 1 or key in out:
                continue
            out[key] = minutes * ONE_MINUTE_MS
        return dict(sorted(out.items(), key=lambda kv: kv[1]))

    @classmethod
    def all_timeframes(cls, rollup_timeframes: Iterable[str]) -> List[str]:
        return [MINUTE_TIMEFRAME, *cls.rollup_config(rollup_timeframes).keys()]
