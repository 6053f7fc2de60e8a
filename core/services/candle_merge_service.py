from __future__ import annotations

DELTA = "delta"
SNAPSHOT = "snapshot"
WRITE_MODES = (DELTA, SNAPSHOT)

# Merge contract for candle upserts, both modes:
#   open: stored value when set, else incoming
#   high/low: max/min of stored and incoming
#   close: incoming
#   trade_count/vwap: stored value when set, else incoming
#   volume: stored + incoming ("delta") or incoming ("snapshot")


def validate_mode(mode: str) -> str:
    m = str(mode or "").strip().lower()
    if m not in WRITE_MODES:
        raise ValueError(f"unsupported write mode: {mode!r}")
    return m
