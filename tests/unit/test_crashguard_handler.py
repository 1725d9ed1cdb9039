"""Unit tests for CrashGuardHandler logging adapter."""

import logging
import sys

import pytest

from crashguardpy.adapters.logging import CrashGuardHandler
from crashguardpy.adapters.storage.in_memory import InMemoryLogStorage
from crashguardpy.core.logs import CrashSafeLogger
from crashguardpy.core.models import LogLevel


def _record(
    level: int = logging.WARNING,
    name: str = "myapp.service",
    msg: str = "disk almost full",
    exc_info: object = None,
) -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="/app/service.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,  # type: ignore[arg-type]
        func="process_request",
    )


@pytest.mark.core
class TestCrashGuardHandler:
    """Tests for CrashGuardHandler adapter."""

    def test_handler_is_logging_handler(self, crash_logger: CrashSafeLogger) -> None:
        """Handler extends logging.Handler."""
        assert isinstance(CrashGuardHandler(crash_logger), logging.Handler)

    def test_default_level_is_warning(self, crash_logger: CrashSafeLogger) -> None:
        """Handler forwards WARNING and above by default."""
        assert CrashGuardHandler(crash_logger).level == logging.WARNING

    def test_emit_writes_entry_with_record_location(
        self, storage: InMemoryLogStorage, crash_logger: CrashSafeLogger
    ) -> None:
        """Emitted records keep logger name and source location."""
        CrashGuardHandler(crash_logger).emit(_record())

        [entry] = list(storage.read())
        assert entry.level is LogLevel.WARN
        assert entry.message == "disk almost full"
        assert entry.extra["logger"] == "myapp.service"
        assert entry.extra["funcName"] == "process_request"
        assert entry.extra["lineno"] == 42

    @pytest.mark.parametrize(
        "levelno,expected",
        [
            (logging.INFO, LogLevel.INFO),
            (logging.WARNING, LogLevel.WARN),
            (logging.ERROR, LogLevel.ERROR),
            (logging.CRITICAL, LogLevel.FATAL),
        ],
    )
    def test_maps_levels(
        self,
        storage: InMemoryLogStorage,
        crash_logger: CrashSafeLogger,
        levelno: int,
        expected: LogLevel,
    ) -> None:
        """Stdlib levels map onto crash log levels."""
        CrashGuardHandler(crash_logger, level=logging.DEBUG).emit(_record(level=levelno))

        [entry] = list(storage.read())
        assert entry.level is expected

    def test_includes_scalar_extra_attributes(
        self, storage: InMemoryLogStorage, crash_logger: CrashSafeLogger
    ) -> None:
        """Scalar extra= attributes are copied into the payload."""
        logger = logging.getLogger("myapp.extra")
        handler = CrashGuardHandler(crash_logger)
        logger.addHandler(handler)
        try:
            logger.warning("slow request", extra={"path": "/stress", "items": [1, 2]})
        finally:
            logger.removeHandler(handler)

        [entry] = list(storage.read())
        assert entry.extra["path"] == "/stress"
        assert "items" not in entry.extra

    def test_includes_exception_info(
        self, storage: InMemoryLogStorage, crash_logger: CrashSafeLogger
    ) -> None:
        """exc_info is rendered into a stack trace."""
        try:
            raise ValueError("bad input")
        except ValueError:
            record = _record(level=logging.ERROR, exc_info=sys.exc_info())

        CrashGuardHandler(crash_logger).emit(record)

        [entry] = list(storage.read())
        assert entry.extra["exc_type"] == "ValueError"
        assert entry.extra["exc_message"] == "bad input"
        assert "ValueError: bad input" in entry.extra["exc_traceback"]

    @pytest.mark.parametrize("name", ["crashguardpy", "crashguardpy.console"])
    def test_ignores_own_console_mirror(
        self, storage: InMemoryLogStorage, crash_logger: CrashSafeLogger, name: str
    ) -> None:
        """Records from the console mirror are not written back."""
        CrashGuardHandler(crash_logger).emit(_record(name=name))

        assert list(storage.read()) == []

    def test_root_handler_does_not_duplicate_mirrored_entries(
        self, storage: InMemoryLogStorage, crash_logger: CrashSafeLogger
    ) -> None:
        """A root handler does not store each entry twice."""
        root = logging.getLogger()
        handler = CrashGuardHandler(crash_logger)
        root.addHandler(handler)
        try:
            crash_logger.error("worker failed")
        finally:
            root.removeHandler(handler)

        assert [e.message for e in storage.read()] == ["worker failed"]
