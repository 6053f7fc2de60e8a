from __future__ import annotations

from typing import Optional

from core.domain.entities.base_entity import MongoEntity


class AssetEntity(MongoEntity):
    """
    An instrument from the asset catalog.

    asset_class drives the regular-trading-hours filter: session-bound classes
    (e.g. "us_equity", "us_option") only produce candles inside the session,
    always-on classes (e.g. "crypto") produce candles around the clock.
    """

    asset_id: int
    symbol: str
    asset_class: str
    exchange: Optional[str] = None
    name: Optional[str] = None
