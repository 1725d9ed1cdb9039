"""Watchdog scheduler: heartbeat, lag sampler and memory sampler.

Each probe runs as its own asyncio task so that a stall in one metric's
collection path does not silence the others. Every tick is short and
non-blocking, and a tick that fails is skipped until the next interval.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from crashguardpy.config import WatchdogThresholds
from crashguardpy.core.logs import CrashSafeLogger
from crashguardpy.core.models import MemoryUsage
from crashguardpy.core.snapshot import SnapshotCollector

logger = logging.getLogger(__name__)

EVENT_LOOP_BLOCKED = "EVENT_LOOP_BLOCKED"
HIGH_MEMORY_PRESSURE = "HIGH_MEMORY_PRESSURE"


class WatchdogScheduler:
    """Runs the three periodic health probes.

    Args:
        logger: Crash log receiving heartbeats.
        collector: Snapshot collector triggered on alarms.
        thresholds: Alarm thresholds and intervals.
        lag_source: Returns the current mean event loop lag in ms.
        memory_source: Returns current memory usage, or None if unreadable.
            Defaults to the collector's reading.
    """

    def __init__(
        self,
        logger: CrashSafeLogger,
        collector: SnapshotCollector,
        thresholds: WatchdogThresholds,
        lag_source: Callable[[], float],
        memory_source: Callable[[], MemoryUsage | None] | None = None,
    ) -> None:
        self._logger = logger
        self._collector = collector
        self._thresholds = thresholds
        self._lag_source = lag_source
        self._memory_source = memory_source or collector.read_memory
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def heartbeat_tick(self) -> None:
        """Write a HEARTBEAT entry with uptime and headline stats."""
        try:
            extra: dict[str, object] = {"uptime": round(self._collector.uptime(), 1)}
            memory = self._memory_source()
            if memory is not None:
                extra["rss_mb"] = round(memory.rss_mb, 1)
                if memory.heap_used_mb is not None:
                    extra["heap_mb"] = round(memory.heap_used_mb, 1)
            self._logger.heartbeat("process alive", **extra)
        except Exception:
            logger.debug("Heartbeat tick failed", exc_info=True)

    def lag_tick(self) -> bool:
        """Snapshot if mean event loop lag is above the alarm threshold.

        Returns:
            True if an EVENT_LOOP_BLOCKED snapshot was taken.
        """
        try:
            lag_ms = float(self._lag_source())
        except Exception:
            logger.debug("Lag source unreadable", exc_info=True)
            return False
        if lag_ms <= self._thresholds.lag_alarm_ms:
            return False
        detail = (
            f"mean lag {lag_ms:.0f}ms exceeds {self._thresholds.lag_alarm_ms:.0f}ms"
        )
        self._collector.capture_snapshot(EVENT_LOOP_BLOCKED, detail)
        return True

    def memory_tick(self) -> bool:
        """Snapshot if resident set size is above the alarm threshold.

        Returns:
            True if a HIGH_MEMORY_PRESSURE snapshot was taken.
        """
        try:
            memory = self._memory_source()
        except Exception:
            logger.debug("Memory source unreadable", exc_info=True)
            return False
        if memory is None or memory.rss_mb <= self._thresholds.rss_alarm_mb:
            return False
        detail = f"rss {memory.rss_mb:.1f}MB exceeds {self._thresholds.rss_alarm_mb:.0f}MB"
        if memory.heap_used_mb is not None:
            detail += f", heap {memory.heap_used_mb:.1f}MB"
        self._collector.capture_snapshot(HIGH_MEMORY_PRESSURE, detail)
        return True

    async def _every(self, interval: float, tick: Callable[[], object]) -> None:
        while True:
            await asyncio.sleep(interval)
            tick()

    def _spawn(
        self,
        loop: asyncio.AbstractEventLoop,
        name: str,
        coro: Coroutine[Any, Any, None],
    ) -> None:
        self._tasks.append(loop.create_task(coro, name=name))

    def start(self) -> None:
        """Start the three probes on the running loop.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._tasks = []
        t = self._thresholds
        self._spawn(
            loop,
            "crashguardpy-heartbeat",
            self._every(t.heartbeat_interval, self.heartbeat_tick),
        )
        self._spawn(
            loop,
            "crashguardpy-lag-sampler",
            self._every(t.lag_sample_interval, self.lag_tick),
        )
        self._spawn(
            loop,
            "crashguardpy-memory-sampler",
            self._every(t.memory_sample_interval, self.memory_tick),
        )

    async def stop(self) -> None:
        """Cancel the probes and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
