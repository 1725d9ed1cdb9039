"""Python logging handler adapter for crashguardpy.

This adapter bridges Python's standard library logging module to the
crash log, so the host application's own warnings and errors sit next
to the guardian's snapshots and death note records.
"""

import logging
import traceback
from typing import Any

from crashguardpy.core.logs import CrashSafeLogger
from crashguardpy.core.models import LogLevel

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

# Records from these loggers are the guardian's own console mirror
_OWN_LOGGER_PREFIX = "crashguardpy"


def _crash_level(levelno: int) -> LogLevel:
    if levelno >= logging.CRITICAL:
        return LogLevel.FATAL
    if levelno >= logging.ERROR:
        return LogLevel.ERROR
    if levelno >= logging.WARNING:
        return LogLevel.WARN
    return LogLevel.INFO


class CrashGuardHandler(logging.Handler):
    """Logging handler that appends log records to the crash log.

    Example:
        ```python
        from crashguardpy import CrashGuardHandler, Guardian

        guardian = Guardian()
        logging.getLogger().addHandler(CrashGuardHandler(guardian.logger))
        ```
    """

    def __init__(self, crash_logger: CrashSafeLogger, level: int = logging.WARNING) -> None:
        """Initialize the handler.

        Args:
            crash_logger: Crash log receiving the records.
            level: Minimum record level forwarded. Defaults to WARNING.
        """
        super().__init__(level)
        self._crash_logger = crash_logger

    def emit(self, record: logging.LogRecord) -> None:
        """Forward a log record to the crash log.

        Args:
            record: The log record to emit.
        """
        if record.name == _OWN_LOGGER_PREFIX or record.name.startswith(
            _OWN_LOGGER_PREFIX + "."
        ):
            return

        extra: dict[str, Any] = {
            "logger": record.name,
            "funcName": record.funcName or "",
            "lineno": record.lineno,
        }

        # Add any extra attributes passed via logging call
        for key, value in record.__dict__.items():
            if key not in _STANDARD_LOGRECORD_ATTRS and isinstance(
                value, (str, int, float, bool)
            ):
                extra[key] = value

        # Extract exception info if present
        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None:
                extra["exc_type"] = exc_type.__name__
            if exc_value is not None:
                extra["exc_message"] = str(exc_value)
            if exc_tb is not None:
                extra["exc_traceback"] = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )

        try:
            message = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        self._crash_logger.log(_crash_level(record.levelno), message, extra)
