"""GC Scheduler - runs collection cycles on a fixed interval."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from msgstore_gc.errors import InterruptedWait
from msgstore_gc.services.gc.base import CycleResult

if TYPE_CHECKING:
    from msgstore_gc.config import GCConfig
    from msgstore_gc.services.gc.collector import Collector

logger = structlog.get_logger()


class GCScheduler:
    """Scheduler for collection cycles.

    Responsibilities:
    - Run the collector periodically until a stop event is set
    - Serialize cycles (a manual run_once never overlaps the loop)
    - Contain cycle failures so the loop keeps going

    Usage:
        scheduler = GCScheduler(collector, config=settings.gc)

        # Run once immediately
        await scheduler.run_once()

        # Run in the foreground until stop_event is set
        await scheduler.run(stop_event)

        # Or manage a background loop
        await scheduler.start()
        await scheduler.stop()
    """

    def __init__(self, collector: "Collector", config: "GCConfig") -> None:
        """Initialize GC scheduler.

        Args:
            collector: Collector executing one cycle per call
            config: GC configuration
        """
        self._collector = collector
        self._config = config
        self._log = logger.bind(service="gc_scheduler")

        # Background loop state
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

        # Mutex to prevent concurrent run_once / background loop overlap
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        """Whether the background loop is running."""
        return self._task is not None and not self._task.done()

    async def run_once(self) -> CycleResult:
        """Execute one GC cycle.

        If another cycle is in progress, this call will wait.
        Never raises for cycle failures.
        """
        async with self._run_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> CycleResult:
        """Internal: Execute one cycle with error containment."""
        try:
            result = await self._collector.run_cycle()
        except Exception as e:
            self._log.exception("gc.cycle.crashed", error=str(e))
            result = CycleResult()
            result.add_error(f"Cycle failed: {e}")
            return result

        if result.errors:
            for error in result.errors:
                self._log.warning("gc.cycle.error", error=error)
        return result

    async def run(self, stop_event: asyncio.Event, *, wait_first: bool = False) -> None:
        """Run cycles until stop_event is set.

        The stop event is checked after every wait. A cycle in progress is
        always finished before the loop exits.

        Args:
            stop_event: Cancellation token, set to request shutdown
            wait_first: Wait one interval before the first cycle
        """
        self._log.info(
            "gc.scheduler.loop_started",
            interval_seconds=self._config.interval_seconds,
        )

        try:
            if wait_first and await self._wait(stop_event):
                return

            while not stop_event.is_set():
                await self.run_once()
                if await self._wait(stop_event):
                    break
        except InterruptedWait as e:
            self._log.warning("gc.scheduler.sleep_interrupted", **e.to_dict())
        finally:
            self._log.info("gc.scheduler.loop_exited")

    async def _wait(self, stop_event: asyncio.Event) -> bool:
        """Sleep until the next cycle. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(
                stop_event.wait(),
                timeout=self._config.interval_seconds,
            )
        except TimeoutError:
            return False
        except asyncio.CancelledError as e:
            raise InterruptedWait() from e
        return True

    async def start(self, *, wait_first: bool = False) -> None:
        """Start background GC loop.

        Call stop() to gracefully shut down.
        """
        if self.is_running:
            self._log.warning("gc.scheduler.already_running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self.run(self._stop_event, wait_first=wait_first)
        )
        self._log.info(
            "gc.scheduler.started",
            interval_seconds=self._config.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop background GC loop gracefully.

        Waits for the current cycle to complete before returning.
        """
        if self._task is None:
            return

        self._log.info("gc.scheduler.stopping")
        if self._stop_event is not None:
            self._stop_event.set()

        await self._task
        self._task = None
        self._stop_event = None

        self._log.info("gc.scheduler.stopped")
