from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel


class AuthOk(BaseModel):
    kind: Literal["auth_ok"] = "auth_ok"
    message: str = ""


class AuthError(BaseModel):
    kind: Literal["auth_error"] = "auth_error"
    code: Optional[int] = None
    message: str = ""


class SubscriptionAck(BaseModel):
    kind: Literal["subscription_ack"] = "subscription_ack"
    trades: List[str] = []


class FeedError(BaseModel):
    kind: Literal["error"] = "error"
    code: Optional[int] = None
    message: str = ""


class TradeEvent(BaseModel):
    """
    A single trade print as delivered by the feed.

    trade_time is epoch milliseconds (UTC). price/size stay Decimal end to end.
    """

    kind: Literal["trade"] = "trade"
    symbol: str
    price: Decimal
    size: Decimal = Decimal("0")
    trade_time: int


class UnknownEvent(BaseModel):
    kind: Literal["unknown"] = "unknown"
    raw: Dict[str, Any] = {}


FeedEvent = Union[AuthOk, AuthError, SubscriptionAck, FeedError, TradeEvent, UnknownEvent]
