"""Fixed-interval driver for the alert cycle."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from alerts.cooldown import CooldownTracker
from alerts.cycle import AlertProcessingCycle
from alerts.models import CycleStatistics, MonitorStatistics
from constants import MONITOR_INTERVAL_SECONDS, SHUTDOWN_GRACE_SECONDS

logger = logging.getLogger(__name__)


class AlertScheduler:
    """Runs cycles on a timer without ever overlapping them.

    A tick that finds a cycle running, or one waiting for the lock, is
    skipped rather than queued.
    ``run_once`` waits for any in-flight cycle and then runs its own.
    """

    def __init__(
        self,
        cycle: AlertProcessingCycle,
        cooldown: Optional[CooldownTracker] = None,
        *,
        prune_cooldown: bool = True,
    ) -> None:
        self.cycle = cycle
        self.cooldown = cooldown
        self.prune_cooldown = prune_cooldown
        self.statistics = MonitorStatistics()
        self.interval = MONITOR_INTERVAL_SECONDS
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None
        # cycles running or waiting on the lock; updated before any await
        self._claimed = 0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def cycle_in_progress(self) -> bool:
        return self._claimed > 0

    def start(self, interval: float = MONITOR_INTERVAL_SECONDS) -> asyncio.Task:
        if self.running:
            raise RuntimeError("Scheduler is already running")
        self.interval = interval
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self._tick_loop(), name="alert-scheduler")
        logger.info("Alert scheduler started (interval=%ss)", interval)
        return self._loop_task

    async def _tick_loop(self) -> None:
        while not self._stop_event.is_set():
            if self._claimed:
                self.statistics.skipped_ticks += 1
                logger.info("Previous cycle still running; skipping tick")
            else:
                self._claimed += 1
                self._current = asyncio.create_task(self._run_cycle(), name="alert-cycle")
                self._current.add_done_callback(self._release_claim)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def _release_claim(self, _task: asyncio.Task) -> None:
        self._claimed -= 1

    async def _run_cycle(self) -> CycleStatistics:
        async with self._cycle_lock:
            try:
                stats = await self.cycle.run()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Alert cycle raised unexpectedly")
                stats = CycleStatistics(errors=1)
            self.statistics.add(stats, datetime.now(timezone.utc))
            if self.cooldown is not None and self.prune_cooldown:
                removed = self.cooldown.prune()
                if removed:
                    logger.debug("Pruned %d expired cooldown entries", removed)
            return stats

    async def run_once(self) -> CycleStatistics:
        """Runs one cycle on demand, after any in-flight cycle completes."""
        self._claimed += 1
        try:
            return await self._run_cycle()
        finally:
            self._claimed -= 1

    async def stop(self, grace: float = SHUTDOWN_GRACE_SECONDS) -> MonitorStatistics:
        """Stops ticking, drains the in-flight cycle for up to ``grace`` seconds."""
        self._stop_event.set()
        if self._loop_task is not None:
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        current = self._current
        if current is not None and not current.done():
            logger.info("Waiting up to %ss for the running cycle to finish", grace)
            try:
                await asyncio.wait_for(asyncio.shield(current), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning("Cycle did not finish within %ss; cancelling", grace)
                current.cancel()
                try:
                    await current
                except asyncio.CancelledError:
                    pass
        self._current = None
        return self.statistics
