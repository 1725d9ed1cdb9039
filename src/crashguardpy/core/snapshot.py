"""System snapshot collection.

A snapshot is a read of process counters at one instant. Each metric is
read through its own probe so that one unavailable source only drops
that field.
"""

import asyncio
import gc
import logging
import time
import tracemalloc
from collections.abc import Callable
from typing import Any, TypeVar

from crashguardpy.core.encoding.ndjson import snapshot_to_dict
from crashguardpy.core.logs import CrashSafeLogger, fallback_console
from crashguardpy.core.models import (
    CpuUsage,
    LogLevel,
    MemoryUsage,
    SystemSnapshot,
    WorkItem,
)
from crashguardpy.core.ports import ProcessProbePort, WorkSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


def heap_statistics() -> dict[str, Any]:
    """Return garbage collector and tracemalloc statistics."""
    gen_stats = gc.get_stats()
    stats: dict[str, Any] = {
        "gc_counts": list(gc.get_count()),
        "gc_collections": [gen["collections"] for gen in gen_stats],
        "gc_collected": [gen["collected"] for gen in gen_stats],
        "gc_uncollectable": [gen["uncollectable"] for gen in gen_stats],
    }
    if tracemalloc.is_tracing():
        current, peak = tracemalloc.get_traced_memory()
        stats["traced_current"] = current
        stats["traced_peak"] = peak
    return stats


def pending_task_count() -> int:
    """Count unfinished asyncio tasks on the running loop.

    Raises:
        RuntimeError: If no event loop is running in this thread.
    """
    loop = asyncio.get_running_loop()
    return sum(1 for task in asyncio.all_tasks(loop) if not task.done())


def copy_work_items(source: WorkSource) -> tuple[WorkItem | dict[str, Any], ...]:
    """Call the work source once and copy what it returns.

    Mappings are copied into plain dicts so later changes made by the host
    do not leak into a snapshot.
    """
    return tuple(
        item if isinstance(item, WorkItem) else dict(item) for item in source()
    )


class SnapshotCollector:
    """Builds SystemSnapshot values and records them in the crash log."""

    def __init__(
        self,
        logger: CrashSafeLogger,
        probe: ProcessProbePort,
        work_source: WorkSource | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the collector.

        Args:
            logger: Crash log receiving SNAPSHOT entries.
            probe: Source of OS-level process counters.
            work_source: Read accessor for in-flight work, owned by the host.
            clock: Source of unix timestamps.
        """
        self._logger = logger
        self._probe = probe
        self._work_source = work_source
        self._clock = clock
        self._started = clock()

    def _read(self, name: str, read: Callable[[], T]) -> T | None:
        try:
            return read()
        except Exception:
            logger.debug("Metric %s unavailable", name, exc_info=True)
            return None

    def uptime(self) -> float:
        """Seconds since the process started."""
        created = self._read("create_time", self._probe.create_time)
        start = self._started if created is None else created
        return max(0.0, self._clock() - start)

    def read_memory(self) -> MemoryUsage | None:
        """Read RSS, VMS and traced heap size, or None if unavailable."""
        memory = self._read("memory", self._probe.memory)
        if memory is None:
            return None
        heap_used = None
        if tracemalloc.is_tracing():
            heap_used = tracemalloc.get_traced_memory()[0]
        rss, vms = memory
        return MemoryUsage(rss=rss, vms=vms, heap_used=heap_used)

    def _read_cpu(self) -> CpuUsage | None:
        times = self._read("cpu_times", self._probe.cpu_times)
        if times is None:
            return None
        return CpuUsage(user=times[0], system=times[1])

    def _read_work_items(self) -> tuple[WorkItem | dict[str, Any], ...] | None:
        source = self._work_source
        if source is None:
            return None
        return self._read("ongoing_work_items", lambda: copy_work_items(source))

    def collect(self) -> SystemSnapshot:
        """Read every metric now. Has no side effects."""
        return SystemSnapshot(
            process_uptime=self.uptime(),
            memory_usage=self.read_memory(),
            cpu_usage=self._read_cpu(),
            load_average=self._read("load_average", self._probe.load_average),
            heap_statistics=self._read("heap_statistics", heap_statistics),
            active_handle_count=self._read("handle_count", self._probe.handle_count),
            active_request_count=self._read("pending_tasks", pending_task_count),
            ongoing_work_items=self._read_work_items(),
        )

    def capture_snapshot(self, reason: str, detail: str | None = None) -> SystemSnapshot:
        """Collect a snapshot and write it to the crash log as a SNAPSHOT entry.

        Args:
            reason: Why the snapshot was taken; becomes the log message.
            detail: Optional human-readable figures (e.g. measured lag).

        Returns:
            The captured snapshot.
        """
        snapshot = self.collect()
        try:
            extra: dict[str, Any] = {"snapshot": snapshot_to_dict(snapshot)}
            if detail is not None:
                extra["detail"] = detail
        except Exception as exc:
            fallback_console(f"Snapshot {reason} could not be serialized", exc)
            extra = {"detail": detail} if detail is not None else {}
        self._logger.log(LogLevel.SNAPSHOT, reason, extra)
        return snapshot
