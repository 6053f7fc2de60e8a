from __future__ import annotations

from core.domain.entities.base_entity import MongoEntity


class WatchlistEntity(MongoEntity):
    """
    A user watchlist. Only memberships of active watchlists are streamed.
    """

    watchlist_id: int
    name: str = ""
    is_active: bool = True


class WatchlistAssetEntity(MongoEntity):
    """
    Membership of an asset in a watchlist.

    Removal is a soft deactivation (is_active=False); the live stream treats the
    union of active memberships of active watchlists as its desired symbol set.
    """

    watchlist_id: int
    asset_id: int
    symbol: str
    is_active: bool = True
