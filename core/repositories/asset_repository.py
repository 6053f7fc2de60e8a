from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Set

from core.domain.entities.asset_entity import AssetEntity


class AssetRepository(ABC):
    """
    Read-only view over the asset catalog and watchlist memberships.
    """

    @abstractmethod
    async def list_active_watchlist_symbols(self) -> Set[str]:
        """
        Union of symbols of active memberships in active watchlists.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_assets(self, symbols: Iterable[str]) -> List[AssetEntity]:
        """
        Resolve symbols to catalog assets. Unknown symbols are omitted.
        """
        raise NotImplementedError
