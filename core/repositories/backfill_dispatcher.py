from __future__ import annotations

from abc import ABC, abstractmethod


class BackfillDispatcher(ABC):
    """
    Hands a historical backfill job for an asset to whatever runs backfills.
    """

    @abstractmethod
    async def dispatch(self, *, asset_id: int, source: str) -> None:
        """
        Enqueue the job. Raises when the job could not be handed off.
        """
        raise NotImplementedError
