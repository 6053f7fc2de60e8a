from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Union

from core.domain.entities.feed_event_entity import (
    AuthError,
    AuthOk,
    FeedError,
    FeedEvent,
    SubscriptionAck,
    TradeEvent,
    UnknownEvent,
)

logger = logging.getLogger(__name__)

# 401 not authenticated, 402 auth failed, 404 auth timeout
AUTH_ERROR_CODES = {401, 402, 404}
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def auth_message(key: str, secret: str) -> str:
    return json.dumps({"action": "auth", "key": key, "secret": secret})


def trades_command(action: str, symbols: List[str]) -> str:
    if action not in ("subscribe", "unsubscribe"):
        raise ValueError(f"unsupported action: {action!r}")
    return json.dumps({"action": action, "trades": list(symbols)})


def parse_trade_time(value: Any) -> int:
    """
    Parse an RFC-3339 timestamp (up to nanosecond precision, "Z" or offset) into epoch ms.
    """
    s = str(value).strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    tz_at = max(s.rfind("+"), s.rfind("-"))
    head, tail = (s[:tz_at], s[tz_at:]) if tz_at > s.find("T") else (s, "")
    if "." in head:
        base, frac = head.split(".", 1)
        head = f"{base}.{frac[:6].ljust(6, '0')}"
    dt = datetime.fromisoformat(head + tail)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return delta.days * 86_400_000 + delta.seconds * 1000 + delta.microseconds // 1000


def _decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def decode_message(msg: Dict[str, Any]) -> FeedEvent:
    """
    Map one vendor message onto the closed set of feed events.
    """
    typ = msg.get("T")
    text = str(msg.get("msg") or "")

    if typ == "t":
        try:
            return TradeEvent(
                symbol=str(msg["S"]).upper(),
                price=_decimal(msg["p"]),
                size=_decimal(msg.get("s", 0)),
                trade_time=parse_trade_time(msg["t"]),
            )
        except (KeyError, ValueError, TypeError, InvalidOperation) as exc:
            logger.debug("Malformed trade message %s: %s", msg, exc)
            return UnknownEvent(raw=msg)

    if typ == "success":
        if "authenticated" in text.lower():
            return AuthOk(message=text)
        return UnknownEvent(raw=msg)

    if typ == "error":
        code = msg.get("code")
        code = int(code) if isinstance(code, (int, str)) and str(code).isdigit() else None
        if code in AUTH_ERROR_CODES or "auth" in text.lower():
            return AuthError(code=code, message=text)
        return FeedError(code=code, message=text)

    if typ == "subscription":
        return SubscriptionAck(trades=[str(s) for s in (msg.get("trades") or [])])

    return UnknownEvent(raw=msg if isinstance(msg, dict) else {"value": msg})


def decode_frame(raw: Union[str, bytes]) -> List[FeedEvent]:
    """
    Decode one websocket frame (a JSON object or a list of them).

    Prices and sizes are parsed straight into Decimal. A frame that is not valid
    JSON yields no events.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw, parse_float=Decimal)
    except json.JSONDecodeError:
        logger.warning("Bad JSON frame: %.200s", raw)
        return []

    items = payload if isinstance(payload, list) else [payload]
    out: List[FeedEvent] = []
    for item in items:
        if isinstance(item, dict):
            out.append(decode_message(item))
        else:
            out.append(UnknownEvent(raw={"value": item}))
    return out
