"""Crash-safe logger that appends LogEntry objects to a storage port.

Nothing in this module raises into its caller. Storage failures are
reported with a best-effort line on stderr and otherwise ignored, since
the logger is called from code that is already handling a failure.
"""

import json
import logging
import os
import sys
import time
from collections.abc import Callable, Mapping
from typing import Any

from crashguardpy.core.models import LogEntry, LogLevel
from crashguardpy.core.ports import LogStoragePort

console = logging.getLogger("crashguardpy.console")

_CONSOLE_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.HEARTBEAT: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ALERT: logging.WARNING,
    LogLevel.SNAPSHOT: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.FATAL: logging.CRITICAL,
}

# Levels mirrored with their full payload rather than a one-line summary
_DETAILED_LEVELS = frozenset({LogLevel.ERROR, LogLevel.FATAL, LogLevel.SNAPSHOT})


def fallback_console(message: str, exc: BaseException | None = None) -> None:
    """Write a diagnostic line straight to stderr. Never raises.

    Args:
        message: What went wrong.
        exc: The exception that caused it, if any.
    """
    try:
        line = f"[crashguardpy] {message}"
        if exc is not None:
            line = f"{line}: {type(exc).__name__}: {exc}"
        print(line, file=sys.stderr, flush=True)
    except Exception:
        pass  # nowhere left to report


def _payload(extra: Any) -> dict[str, Any]:
    """Copy the extra payload, wrapping anything that is not a mapping."""
    if extra is None:
        return {}
    if isinstance(extra, Mapping):
        return {str(key): value for key, value in extra.items()}
    return {"value": extra}


class CrashSafeLogger:
    """Append-only structured logger that never fails visibly.

    Example:
        ```python
        from crashguardpy import CrashSafeLogger, NdjsonFileLogStorage

        logger = CrashSafeLogger(NdjsonFileLogStorage("logs/crash_log.log"))
        logger.info("Service started", port=4000)
        ```
    """

    def __init__(
        self,
        storage: LogStoragePort,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the logger with a storage backend.

        Args:
            storage: Storage adapter implementing LogStoragePort.
            clock: Source of unix timestamps.
        """
        self._storage = storage
        self._clock = clock
        self._last_timestamp = 0.0

    @property
    def storage(self) -> LogStoragePort:
        return self._storage

    def log(
        self,
        level: LogLevel | str,
        message: str,
        extra: Any = None,
    ) -> LogEntry | None:
        """Append one entry to the crash log and mirror it to the console.

        Args:
            level: One of the LogLevel values.
            message: The log message.
            extra: Additional structured payload. A value that is not a
                mapping is stored under "value".

        Returns:
            The entry written, or None if it could not be stored.
        """
        try:
            level = LogLevel(level)
        except (ValueError, TypeError):
            fallback_console(f"Unknown log level {level!r} for message {message!r}")
            return None

        try:
            # Entries must never go back in time, even if the wall clock does
            timestamp = max(self._clock(), self._last_timestamp)
            self._last_timestamp = timestamp
            entry = LogEntry(
                timestamp=timestamp,
                pid=os.getpid(),
                level=level,
                message=str(message),
                extra=_payload(extra),
            )
        except Exception as exc:
            fallback_console(f"Logging failed for {message!r}", exc)
            return None

        stored = True
        try:
            self._storage.write(entry)
        except Exception as exc:
            stored = False
            fallback_console("Logging failed", exc)

        self._mirror(entry)
        return entry if stored else None

    def _mirror(self, entry: LogEntry) -> None:
        try:
            if entry.level in _DETAILED_LEVELS and entry.extra:
                console.log(
                    _CONSOLE_LEVELS[entry.level],
                    "%s %s %s",
                    entry.level,
                    entry.message,
                    json.dumps(entry.extra, default=str),
                )
            else:
                console.log(
                    _CONSOLE_LEVELS[entry.level], "%s %s", entry.level, entry.message
                )
        except Exception as exc:
            fallback_console("Console mirror failed", exc)

    def info(self, message: str, **extra: Any) -> LogEntry | None:
        return self.log(LogLevel.INFO, message, extra)

    def warn(self, message: str, **extra: Any) -> LogEntry | None:
        return self.log(LogLevel.WARN, message, extra)

    def error(self, message: str, **extra: Any) -> LogEntry | None:
        return self.log(LogLevel.ERROR, message, extra)

    def fatal(self, message: str, **extra: Any) -> LogEntry | None:
        return self.log(LogLevel.FATAL, message, extra)

    def alert(self, message: str, **extra: Any) -> LogEntry | None:
        return self.log(LogLevel.ALERT, message, extra)

    def heartbeat(self, message: str, **extra: Any) -> LogEntry | None:
        return self.log(LogLevel.HEARTBEAT, message, extra)
