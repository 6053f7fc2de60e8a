from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.services.tick_buffer import TickBuffer
from core.usecases.process_tick_batch_use_case import BatchResult, ProcessTickBatchUseCase


class DrainTickBufferUseCase:
    """
    Background loop that drains the tick buffer and processes one batch at a time.

    A batch is at most `max_ticks` trades or whatever arrived within `budget_ms`.
    When the buffer is empty the loop sleeps `idle_sleep_s` and re-checks the stop
    flag. Batch N is fully persisted before batch N+1 is drained.
    """

    def __init__(
        self,
        *,
        tick_buffer: TickBuffer,
        process_batch_uc: ProcessTickBatchUseCase,
        max_ticks: int = 2000,
        budget_ms: int = 250,
        idle_sleep_s: float = 0.1,
        logger: logging.Logger | None = None,
    ) -> None:
        self._buffer = tick_buffer
        self._process = process_batch_uc
        self._max_ticks = int(max_ticks)
        self._budget_s = float(budget_ms) / 1000.0
        self._idle_sleep_s = float(idle_sleep_s)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self.batches_processed = 0
        self.last_batch: Optional[BatchResult] = None

        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    def start(self) -> None:
        """Start the drain loop in background."""
        if self._task is None:
            self._stop.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the drain loop after the current batch."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def drain_once(self) -> Optional[BatchResult]:
        """
        Drain and process a single batch. Returns None when the buffer was empty.
        """
        ticks = self._buffer.drain(max_items=self._max_ticks, budget_s=self._budget_s)
        if not ticks:
            return None
        self._logger.debug("Processing %d ticks", len(ticks))
        result = await self._process.execute(ticks)
        self.batches_processed += 1
        self.last_batch = result
        return result

    async def _run(self) -> None:
        self._logger.debug("Drain loop started")
        while not self._stop.is_set():
            if self._buffer.empty():
                await asyncio.sleep(self._idle_sleep_s)
                continue
            try:
                await self.drain_once()
            except Exception as exc:
                self._logger.exception("Batch processing failed: %s", exc)
        self._logger.debug("Drain loop stopped")
