"""Core domain models for crash diagnostics data."""

import traceback
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

_MB = 1024 * 1024


class LogLevel(StrEnum):
    """Levels accepted by the crash log."""

    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"
    ALERT = "ALERT"
    SNAPSHOT = "SNAPSHOT"
    HEARTBEAT = "HEARTBEAT"


@dataclass(frozen=True)
class LogEntry:
    """A structured crash log entry.

    Attributes:
        timestamp: Unix timestamp in seconds.
        pid: Id of the process that wrote the entry.
        level: One of the LogLevel values.
        message: The log message.
        extra: Open-ended structured payload.
    """

    timestamp: float
    pid: int
    level: LogLevel
    message: str
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MemoryUsage:
    """Memory figures for the current process, in bytes.

    Attributes:
        rss: Resident set size.
        vms: Virtual memory size.
        heap_used: Bytes traced by tracemalloc, None when not tracing.
    """

    rss: int
    vms: int
    heap_used: int | None = None

    @property
    def rss_mb(self) -> float:
        return self.rss / _MB

    @property
    def heap_used_mb(self) -> float | None:
        if self.heap_used is None:
            return None
        return self.heap_used / _MB


@dataclass(frozen=True)
class CpuUsage:
    """Accumulated CPU time of the process, in seconds."""

    user: float
    system: float


@dataclass(frozen=True)
class WorkItem:
    """An in-flight unit of work reported by the host's request tracker.

    Attributes:
        method: Operation verb (e.g. HTTP method).
        target: What the work is acting on (e.g. request path).
        start_time: ISO-8601 time the work started.
        origin: Who asked for it (e.g. client address).
    """

    method: str
    target: str
    start_time: str
    origin: str = "unknown"


@dataclass(frozen=True)
class SystemSnapshot:
    """Point-in-time bundle of runtime health metrics.

    Every field but process_uptime may be None when its probe is not
    available on this platform or failed during capture.
    """

    process_uptime: float
    memory_usage: MemoryUsage | None = None
    cpu_usage: CpuUsage | None = None
    load_average: tuple[float, float, float] | None = None
    heap_statistics: dict[str, Any] | None = None
    active_handle_count: int | None = None
    active_request_count: int | None = None
    ongoing_work_items: tuple[WorkItem | dict[str, Any], ...] | None = None


@dataclass(frozen=True)
class ErrorInfo:
    """Exception details carried by a death note."""

    type: str
    message: str
    stack_trace: str = ""

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorInfo":
        """Build an ErrorInfo from an exception and its traceback."""
        stack = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        return cls(type=type(exc).__name__, message=str(exc), stack_trace=stack)


@dataclass(frozen=True)
class DeathNote:
    """Durable description of the condition that killed a process.

    Attributes:
        timestamp: Unix timestamp in seconds when the note was written.
        pid: Id of the dying process.
        reason: Short machine-readable cause (e.g. SIGNAL_SIGTERM).
        snapshot: System state captured while writing the note.
        error: Exception details for uncaught exceptions.
        graceful: True when the process was stopped by a trapped signal
            rather than killed by an uncaught exception.
    """

    timestamp: float
    pid: int
    reason: str
    snapshot: SystemSnapshot
    error: ErrorInfo | None = None
    graceful: bool = False
