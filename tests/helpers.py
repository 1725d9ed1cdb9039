"""Test doubles shared across test modules."""

from crashguardpy.adapters.storage.in_memory import InMemoryLogStorage
from crashguardpy.core.models import LogEntry, LogLevel

MB = 1024 * 1024


class FakeProcessProbe:
    """ProcessProbePort double with fixed readings.

    Any metric named in ``failing`` raises when read.
    """

    def __init__(
        self,
        rss: int = 100 * MB,
        vms: int = 400 * MB,
        created: float = 1702300000.0,
        failing: set[str] | None = None,
    ) -> None:
        self.rss = rss
        self.vms = vms
        self.created = created
        self.failing = failing or set()

    def _check(self, name: str) -> None:
        if name in self.failing:
            raise OSError(f"{name} unavailable")

    def memory(self) -> tuple[int, int]:
        self._check("memory")
        return self.rss, self.vms

    def cpu_times(self) -> tuple[float, float]:
        self._check("cpu_times")
        return 1.5, 0.25

    def load_average(self) -> tuple[float, float, float]:
        self._check("load_average")
        return 0.5, 0.4, 0.3

    def create_time(self) -> float:
        self._check("create_time")
        return self.created

    def handle_count(self) -> int:
        self._check("handle_count")
        return 12


class FailingLogStorage:
    """LogStoragePort double whose writes always fail."""

    def write(self, entry: LogEntry) -> None:
        raise OSError("disk full")

    def read(self, since: float = 0) -> list[LogEntry]:
        return []


def entries_at(storage: InMemoryLogStorage, level: LogLevel) -> list[LogEntry]:
    """Entries of one level, in append order."""
    return [e for e in storage.read() if e.level == level]
