"""Fault and signal traps.

Registers the process-lifecycle hooks that turn an uncaught exception,
an unhandled asyncio failure, a termination signal or a normal exit
into ordered crash log and death note writes. Each handler is a plain
method so it can be driven directly with synthetic arguments.
"""

import asyncio
import atexit
import faulthandler
import signal
import sys
import traceback
from collections.abc import Callable, Iterable
from enum import StrEnum
from pathlib import Path
from types import FrameType, TracebackType
from typing import IO, Any

from crashguardpy.core.death_note import DeathNoteKeeper
from crashguardpy.core.logs import CrashSafeLogger, fallback_console
from crashguardpy.core.models import ErrorInfo
from crashguardpy.core.snapshot import SnapshotCollector

UNCAUGHT_EXCEPTION = "UNCAUGHT_EXCEPTION"
UNHANDLED_REJECTION = "UNHANDLED_REJECTION"

DEFAULT_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGABRT)


class LifecycleState(StrEnum):
    RUNNING = "RUNNING"
    TERMINATING = "TERMINATING"
    TERMINATED = "TERMINATED"


class TrapLayer:
    """Process-lifecycle hooks for the crash guardian.

    Args:
        logger: Crash log.
        collector: Snapshot collector.
        death_notes: Death note keeper.
        exit_func: Called with the exit status once a terminal event has
            been recorded. Defaults to sys.exit.
        signals: Termination signals to trap.
        fault_log_path: File receiving faulthandler tracebacks for native
            crashes, or None to leave faulthandler alone.
    """

    def __init__(
        self,
        logger: CrashSafeLogger,
        collector: SnapshotCollector,
        death_notes: DeathNoteKeeper,
        exit_func: Callable[[int], Any] = sys.exit,
        signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
        fault_log_path: str | Path | None = None,
    ) -> None:
        self._logger = logger
        self._collector = collector
        self._death_notes = death_notes
        self._exit_func = exit_func
        self._signals = tuple(signals)
        self._fault_log_path = None if fault_log_path is None else Path(fault_log_path)
        self.state = LifecycleState.RUNNING
        self.exit_code: int | None = None
        self._installed = False
        self._previous_excepthook: Callable[..., Any] | None = None
        self._previous_signal_handlers: dict[signal.Signals, Any] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_loop_handler: Callable[..., Any] | None = None
        self._fault_file: IO[str] | None = None

    def _begin_termination(self) -> bool:
        if self.state is not LifecycleState.RUNNING:
            return False
        self.state = LifecycleState.TERMINATING
        return True

    def _terminate(self, code: int) -> None:
        self.exit_code = code
        self.state = LifecycleState.TERMINATED
        self._exit_func(code)

    # --- Handlers ---

    def handle_uncaught_exception(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        """sys.excepthook: record the fault, then exit with status 1."""
        if not self._begin_termination():
            return
        if exc.__traceback__ is None and tb is not None:
            exc = exc.with_traceback(tb)
        error = ErrorInfo.from_exception(exc)
        self._death_notes.write_death_note(UNCAUGHT_EXCEPTION, error)
        self._collector.capture_snapshot(UNCAUGHT_EXCEPTION)
        self._logger.fatal(
            error.stack_trace or f"{exc_type.__name__}: {exc}",
            type=error.type,
            error=error.message,
        )
        self._terminate(1)

    def handle_unhandled_rejection(
        self,
        loop: asyncio.AbstractEventLoop | None,
        context: dict[str, Any],
    ) -> None:
        """asyncio exception handler: record the failure and keep running."""
        message = context.get("message") or "Unhandled exception in asyncio"
        exc = context.get("exception")
        detail = message if exc is None else f"{message}: {type(exc).__name__}: {exc}"
        self._collector.capture_snapshot(UNHANDLED_REJECTION, detail)
        extra: dict[str, Any] = {}
        if exc is not None:
            extra["stack_trace"] = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        self._logger.error(detail, **extra)

    def handle_signal(self, signum: int, frame: FrameType | None = None) -> None:
        """Signal handler: record the stop, then exit with status 0."""
        if not self._begin_termination():
            return
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        reason = f"SIGNAL_{name}"
        self._death_notes.write_death_note(reason, graceful=True)
        self._collector.capture_snapshot(reason)
        self._terminate(0)

    def record_exit(self, code: object) -> None:
        """Remember the status of a SystemExit seen on its way out.

        Args:
            code: SystemExit.code. None means 0, a non-integer means 1,
                as the interpreter itself treats them.
        """
        if code is None:
            self.exit_code = 0
        elif isinstance(code, int):
            self.exit_code = code
        else:
            self.exit_code = 1

    def handle_exit(self) -> None:
        """atexit hook: record that the process is ending.

        The exit status is included when it is known. The interpreter does
        not expose it to atexit hooks, so it is known only after a fault or
        signal handled here, or a SystemExit passed to record_exit().
        """
        if self.exit_code is None:
            self._logger.info("Process exiting")
        else:
            self._logger.info("Process exiting", exit_code=self.exit_code)
        self.state = LifecycleState.TERMINATED

    # --- Registration ---

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Register every hook. Later calls are ignored.

        Args:
            loop: Event loop whose exception handler to replace.
        """
        if self._installed:
            return
        self._installed = True

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self.handle_uncaught_exception

        for sig in self._signals:
            try:
                self._previous_signal_handlers[sig] = signal.signal(sig, self.handle_signal)
            except (ValueError, OSError) as exc:
                # Only the main thread may set handlers; some signals are
                # not settable on every platform
                fallback_console(f"Cannot trap {sig.name}", exc)

        if loop is not None:
            self._loop = loop
            self._previous_loop_handler = loop.get_exception_handler()
            loop.set_exception_handler(self.handle_unhandled_rejection)

        atexit.register(self.handle_exit)
        self._enable_faulthandler()

    def _enable_faulthandler(self) -> None:
        if self._fault_log_path is None:
            return
        try:
            self._fault_log_path.parent.mkdir(parents=True, exist_ok=True)
            self._fault_file = self._fault_log_path.open("a", encoding="utf-8")
            faulthandler.enable(file=self._fault_file, all_threads=True)
        except (OSError, RuntimeError, ValueError) as exc:
            fallback_console(f"Cannot enable faulthandler at {self._fault_log_path}", exc)

    def uninstall(self, keep_exit_hook: bool = False) -> None:
        """Restore every hook replaced by install().

        Args:
            keep_exit_hook: Leave the atexit hook registered, for a process
                that is already on its way out.
        """
        if not self._installed:
            return
        self._installed = False

        if sys.excepthook == self.handle_uncaught_exception:
            sys.excepthook = self._previous_excepthook or sys.__excepthook__
        for sig, previous in self._previous_signal_handlers.items():
            try:
                signal.signal(sig, previous)
            except (ValueError, OSError, TypeError) as exc:
                fallback_console(f"Cannot restore handler for {sig.name}", exc)
        self._previous_signal_handlers.clear()

        if self._loop is not None and not self._loop.is_closed():
            self._loop.set_exception_handler(self._previous_loop_handler)
        self._loop = None

        if not keep_exit_hook:
            atexit.unregister(self.handle_exit)
        if self._fault_file is not None:
            faulthandler.disable()
            self._fault_file.close()
            self._fault_file = None
