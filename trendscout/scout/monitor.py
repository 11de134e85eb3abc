"""Long-running scan scheduler.

The monitor owns one supervisory task that runs a scan cycle, then waits
for the scan interval, until stopped. Cycles never overlap. stop() takes
effect before the next cycle starts; a cycle already in flight finishes so
that a scan is never half persisted.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Optional

from trendscout.core.logging import get_logger
from trendscout.core.settings import Settings, get_settings
from trendscout.core.time import utc_now
from trendscout.scout.pipeline import ScanPipeline, ScanResult, build_pipeline

logger = get_logger(__name__)


class MonitorState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class TrendMonitor:
    """Runs scan cycles on a fixed interval with idempotent start/stop."""

    def __init__(self, pipeline: ScanPipeline, interval_seconds: float = 15 * 60):
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds
        self._state = MonitorState.STOPPED
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._cycle_lock = asyncio.Lock()

        self.cycle_count = 0
        self.failed_cycles = 0
        self.started_at = None
        self.last_cycle_at = None
        self.last_result: Optional[ScanResult] = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is MonitorState.RUNNING

    async def start(self) -> bool:
        """Start the loop. Returns False if it was already running."""
        async with self._lock:
            if self._state is MonitorState.RUNNING:
                logger.info("Trend monitoring is already running")
                return False

            # A loop from an earlier start may still be finishing its last cycle
            if self._task is not None and not self._task.done():
                await self._task

            self._state = MonitorState.RUNNING
            self._stop_event = asyncio.Event()
            self.started_at = utc_now()
            self._task = asyncio.create_task(self._run_loop())
            logger.info(f"Trend monitor started, scanning every {self.interval_seconds:.0f}s")
            return True

    async def stop(self, wait: bool = True) -> bool:
        """
        Stop the loop. Returns False if it was already stopped.

        With ``wait`` the call returns once any in-flight cycle and its
        pending notifications have completed.
        """
        async with self._lock:
            if self._state is MonitorState.STOPPED:
                return False
            self._state = MonitorState.STOPPED
            self._stop_event.set()
            task = self._task

        logger.info("Trend monitor stopping")
        if wait:
            if task is not None:
                await task
            await self.pipeline.wait_for_notifications()
        return True

    async def run_once(self) -> Optional[ScanResult]:
        """
        Run one cycle, containing any failure so the loop survives it.

        Manual runs share the cycle lock with the loop, so two cycles never
        execute at the same time.
        """
        try:
            async with self._cycle_lock:
                result = await self.pipeline.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failed_cycles += 1
            self.last_error = str(e)
            logger.error(f"Scan cycle failed: {e}", exc_info=True)
            return None
        finally:
            self.cycle_count += 1
            self.last_cycle_at = utc_now()

        self.last_result = result
        if result.stats.errors:
            self.last_error = result.stats.errors[-1]
        return result

    async def _run_loop(self) -> None:
        while self.is_running:
            await self.run_once()
            if not self.is_running:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info(f"Trend monitor stopped after {self.cycle_count} cycles")

    async def join(self) -> None:
        """Wait until the current loop task exits."""
        if self._task is not None:
            await self._task

    def status(self) -> Dict[str, Any]:
        last_stats = None
        if self.last_result is not None:
            last_stats = self.last_result.to_dict()['stats']
        return {
            'state': self._state.value,
            'interval_seconds': self.interval_seconds,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'cycle_count': self.cycle_count,
            'failed_cycles': self.failed_cycles,
            'last_cycle_at': self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            'last_cycle': last_stats,
            'last_error': self.last_error,
        }


def build_monitor(settings: Optional[Settings] = None, **pipeline_overrides) -> TrendMonitor:
    settings = settings or get_settings()
    pipeline = build_pipeline(settings, **pipeline_overrides)
    return TrendMonitor(pipeline, interval_seconds=settings.scan_interval_seconds)


async def run_monitor_forever(settings: Optional[Settings] = None, dry_run: bool = False) -> None:
    """Run the monitor until the process is interrupted."""
    from trendscout.scout.store import MemoryTrendStore

    overrides = {'store': MemoryTrendStore()} if dry_run else {}
    monitor = build_monitor(settings, **overrides)
    await monitor.start()
    try:
        await monitor.join()
    finally:
        await monitor.stop()
        await monitor.pipeline.aclose()
