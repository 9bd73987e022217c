"""Base class for long-running background loops owned by the composition root."""
from __future__ import annotations

import abc
import asyncio
import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class BackgroundService(abc.ABC):
    """Runs ``tick()`` immediately on start and then every ``interval`` seconds.

    A failing tick is logged and the loop keeps going; only ``stop()`` ends it.
    """

    name = "service"

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self.state = ServiceState.STOPPED
        self.last_error: Optional[str] = None
        self._runner: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self.state is ServiceState.RUNNING

    async def start(self) -> None:
        """Start the background loop; calling it again while running is a no-op."""
        if self._runner is not None:
            return
        # Events bind to the loop that first awaits them; one pair per start.
        self._stop_event = asyncio.Event()
        self._started_event = asyncio.Event()
        self._runner = asyncio.create_task(self._run_safe(), name=self.name)
        await self._started_event.wait()

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the current tick to finish."""
        if self._runner is None:
            return
        self._stop_event.set()
        await self._runner
        self._runner = None

    async def _run_safe(self) -> None:
        self.state = ServiceState.RUNNING
        self._started_event.set()
        logger.info("%s started (interval %.1fs)", self.name, self.interval)
        try:
            while not self._stop_event.is_set():
                try:
                    await self.tick()
                except Exception as exc:  # noqa: BLE001
                    self.last_error = str(exc)
                    logger.exception("%s tick failed", self.name)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.state = ServiceState.STOPPED
            logger.info("%s stopped", self.name)

    @abc.abstractmethod
    async def tick(self) -> None:
        """One unit of periodic work."""
