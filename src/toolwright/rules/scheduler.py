"""Periodic propagation scheduling.

Runs a propagation cycle immediately on start and then every
``interval_hours``. Cycles run in a worker thread so the event loop is
never blocked by SQLite I/O.
"""

from __future__ import annotations

import asyncio

from toolwright.core.logging import get_logger
from toolwright.rules.propagation import PropagationResult, RulePropagationEngine

_logger = get_logger("rules.scheduler")


class PropagationScheduler:
    """Owns the background task driving propagation cycles.

    Example:
        scheduler = PropagationScheduler(engine, interval_hours=24)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        engine: RulePropagationEngine,
        interval_hours: float | None = None,
    ) -> None:
        self.engine = engine
        if interval_hours is None:
            interval_hours = engine.config.interval_hours
        self._interval_seconds = interval_hours * 3600.0
        self._task: asyncio.Task[None] | None = None
        self.last_result: PropagationResult | None = None
        self.cycles_run = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the propagation loop. Calling start twice is a no-op."""
        if self.is_running:
            _logger.info("propagation_scheduler_already_running")
            return
        self._task = asyncio.create_task(self._loop())
        _logger.info(
            "propagation_scheduler_started",
            interval_hours=self._interval_seconds / 3600.0,
        )

    async def stop(self) -> None:
        """Cancel the loop and wait for it to exit."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        _logger.info("propagation_scheduler_stopped", cycles_run=self.cycles_run)

    async def run_once(self) -> PropagationResult:
        """Run a single cycle off the event loop."""
        result = await asyncio.to_thread(self.engine.run_cycle)
        self.last_result = result
        self.cycles_run += 1
        return result

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
                await asyncio.sleep(self._interval_seconds)
            except asyncio.CancelledError:
                break
