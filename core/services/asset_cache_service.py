from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from core.domain.entities.asset_entity import AssetEntity


@dataclass(frozen=True)
class AssetSnapshot:
    """
    Point-in-time copy of the symbol/asset-class caches for one batch.
    """

    symbol_to_id: Dict[str, int] = field(default_factory=dict)
    id_to_class: Dict[int, str] = field(default_factory=dict)

    def resolve(self, symbol: str) -> Optional[int]:
        return self.symbol_to_id.get(symbol)

    def asset_class(self, asset_id: int) -> Optional[str]:
        return self.id_to_class.get(asset_id)


class AssetCache:
    """
    symbol -> asset_id and asset_id -> asset_class caches shared between the
    subscription task (writer) and the drain task (reader).

    All access goes through a lock; readers take a snapshot so the lock is never
    held while a batch is being processed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._symbol_to_id: Dict[str, int] = {}
        self._id_to_class: Dict[int, str] = {}

    def merge(self, assets: Iterable[AssetEntity]) -> Dict[str, int]:
        """
        Add or refresh catalog entries. Returns the symbol -> asset_id pairs merged.
        """
        merged: Dict[str, int] = {}
        with self._lock:
            for a in assets:
                self._symbol_to_id[a.symbol] = int(a.asset_id)
                self._id_to_class[int(a.asset_id)] = a.asset_class
                merged[a.symbol] = int(a.asset_id)
        return merged

    def purge_symbol(self, symbol: str) -> Optional[int]:
        """
        Drop a symbol and its asset class. Returns the purged asset_id, if any.
        """
        with self._lock:
            asset_id = self._symbol_to_id.pop(symbol, None)
            if asset_id is not None and asset_id not in self._symbol_to_id.values():
                self._id_to_class.pop(asset_id, None)
            return asset_id

    def snapshot(self) -> AssetSnapshot:
        with self._lock:
            return AssetSnapshot(dict(self._symbol_to_id), dict(self._id_to_class))

    def __len__(self) -> int:
        with self._lock:
            return len(self._symbol_to_id)
