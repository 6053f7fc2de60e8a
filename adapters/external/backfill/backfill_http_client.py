from __future__ import annotations

from typing import Any, Dict

import httpx

from core.repositories.backfill_dispatcher import BackfillDispatcher


class BackfillHttpClient(BackfillDispatcher):
    """
    Hands backfill jobs to the historical backfill service over HTTP.
    """

    def __init__(self, *, base_url: str, timeout_s: float = 10.0):
        self._base_url = str(base_url).rstrip("/")
        self._timeout = timeout_s

    async def dispatch(self, *, asset_id: int, source: str) -> None:
        payload: Dict[str, Any] = {
            "asset_id": int(asset_id),
            "source": source,
        }

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            r = await client.post(f"{self._base_url}/backfills", json=payload)
            r.raise_for_status()
