"""In-memory storage adapter for the crash log."""

from collections.abc import Iterable

from crashguardpy.core.models import LogEntry


class InMemoryLogStorage:
    """In-memory implementation of LogStoragePort.

    Stores log entries in a list. Suitable for testing and for embedding
    where the crash log does not need to outlive the process.
    """

    def __init__(self) -> None:
        self._entries: list[LogEntry] = []

    def write(self, entry: LogEntry) -> None:
        """Append a log entry to storage."""
        self._entries.append(entry)

    def read(self, since: float = 0) -> Iterable[LogEntry]:
        """Read log entries since the given timestamp, in append order."""
        return [e for e in self._entries if e.timestamp > since]

    def __len__(self) -> int:
        return len(self._entries)
