"""Fixed-interval background loops run inside the API process."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

logger = logging.getLogger(__name__)


class PeriodicTask(ABC):
    """Runs ``run_once`` every ``interval_seconds`` until stopped.

    A failing tick is logged and the loop carries on with the next one.
    """

    name = "periodic"

    def __init__(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"{self.name}: interval must be positive, got {interval_seconds}")
        self.interval_seconds = interval_seconds
        self._task: Optional["asyncio.Task[Any]"] = None

    @abstractmethod
    async def run_once(self) -> int:
        """One pass; returns the number of orders processed."""

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> Optional[int]:
        try:
            return await self.run_once()
        except Exception:
            logger.exception("Scheduler %s: tick failed", self.name)
            return None

    async def _loop(self) -> None:
        logger.info("Scheduler %s: started (every %ss)", self.name, self.interval_seconds)
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.tick()

    def start(self) -> "asyncio.Task[Any]":
        if not self.running:
            self._task = asyncio.create_task(self._loop(), name=f"scheduler:{self.name}")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Scheduler %s: stopped", self.name)
