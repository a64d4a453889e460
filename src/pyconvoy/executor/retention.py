"""Periodic retention sweep.

Runs ``Orchestrator.cleanup()`` on an interval in a background task. The
sweep only touches finished workflows in the store, so it never blocks or
interferes with workflows being executed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pyconvoy.executor.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Background loop purging expired workflows.

    Usage:
        sweeper = RetentionSweeper(orchestrator, interval=3600.0)
        handle = await sweeper.start()

        # ... application runs ...

        await handle.shutdown()
    """

    def __init__(self, orchestrator: Orchestrator, interval: float = 3600.0):
        """
        Args:
            orchestrator: Orchestrator whose store is swept
            interval: Seconds between sweeps
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._orchestrator = orchestrator
        self._interval = interval
        self._shutdown_event = asyncio.Event()
        self._sweeps = 0

    @property
    def sweeps(self) -> int:
        """Number of completed sweeps."""
        return self._sweeps

    async def start(self) -> SweeperHandle:
        """Start the sweep loop and return immediately."""
        self._shutdown_event.clear()
        task = asyncio.create_task(self._run())
        return SweeperHandle(self, task)

    async def sweep_once(self) -> list[str]:
        purged = await self._orchestrator.cleanup()
        self._sweeps += 1
        return purged

    async def _run(self) -> None:
        logger.info(f"Retention sweeper started (interval={self._interval}s)")

        while not self._shutdown_event.is_set():
            try:
                await self.sweep_once()
            except Exception as e:
                # A failed sweep is retried on the next interval
                logger.error(f"Retention sweep failed: {e}")

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self._interval)
            except TimeoutError:
                pass

        logger.info("Retention sweeper stopped")

    async def shutdown(self) -> None:
        """Signal the loop to stop after the current sweep."""
        self._shutdown_event.set()


class SweeperHandle:
    """Handle for controlling a running sweeper.

    Composition - handle HAS-A sweeper, not IS-A sweeper.
    """

    def __init__(self, sweeper: RetentionSweeper, task: asyncio.Task):
        self._sweeper = sweeper
        self._task = task

    def is_running(self) -> bool:
        return not self._task.done()

    async def shutdown(self) -> None:
        """Stop the sweeper and wait for its loop to exit."""
        await self._sweeper.shutdown()
        await self._task

    def abort(self) -> None:
        """Cancel the sweep loop without waiting."""
        self._task.cancel()
