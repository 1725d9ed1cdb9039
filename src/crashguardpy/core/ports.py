"""Port interfaces for crash log storage and process probing.

These protocols define the contracts that adapters must implement.
The core depends only on these interfaces, not concrete implementations.
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

from crashguardpy.core.models import LogEntry, WorkItem


@runtime_checkable
class LogStoragePort(Protocol):
    """Port for append-only crash log storage.

    Adapters implementing this protocol persist log entries in append order.
    Examples: NdjsonFileLogStorage, InMemoryLogStorage.
    """

    def write(self, entry: LogEntry) -> None:
        """Append a log entry to storage.

        May raise on I/O failure; the crash-safe logger absorbs it.
        """
        ...

    def read(self, since: float = 0) -> Iterable[LogEntry]:
        """Read log entries since the given timestamp.

        Args:
            since: Unix timestamp. Returns entries with timestamp > since.
                   Default 0 returns all entries.

        Returns:
            Iterable of LogEntry objects, in append order.
        """
        ...


@runtime_checkable
class ProcessProbePort(Protocol):
    """Port for reading OS-level counters of the current process.

    Any method may raise when the metric is unavailable; the snapshot
    collector omits that metric.
    """

    def memory(self) -> tuple[int, int]:
        """Return (rss, vms) in bytes."""
        ...

    def cpu_times(self) -> tuple[float, float]:
        """Return (user, system) CPU seconds."""
        ...

    def load_average(self) -> tuple[float, float, float]:
        """Return the 1, 5 and 15 minute system load averages."""
        ...

    def create_time(self) -> float:
        """Return the process start time as a unix timestamp."""
        ...

    def handle_count(self) -> int:
        """Return the number of open file descriptors or handles."""
        ...


# Read accessor exposed by the host's request tracker.
WorkSource = Callable[[], Iterable[WorkItem | Mapping[str, Any]]]
