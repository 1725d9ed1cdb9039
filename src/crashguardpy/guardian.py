"""Process-wide crash guardian.

Builds the crash log, snapshot collector, death note keeper, watchdog and
traps once, and gives them an explicit start/stop lifecycle.

Example:
    ```python
    import asyncio
    from crashguardpy import Guardian, GuardianConfig

    async def main() -> None:
        async with Guardian(GuardianConfig.from_env()) as guardian:
            await serve_forever()

    asyncio.run(main())
    ```
"""

import asyncio
import sys
from collections.abc import Callable
from types import TracebackType
from typing import Any

from crashguardpy.adapters.psutil_probe import PsutilProcessProbe
from crashguardpy.adapters.storage.ndjson_file import NdjsonFileLogStorage
from crashguardpy.config import GuardianConfig
from crashguardpy.core.death_note import DeathNoteKeeper
from crashguardpy.core.lag import LoopLagMonitor
from crashguardpy.core.logs import CrashSafeLogger
from crashguardpy.core.models import DeathNote
from crashguardpy.core.ports import LogStoragePort, ProcessProbePort, WorkSource
from crashguardpy.core.snapshot import SnapshotCollector
from crashguardpy.core.traps import LifecycleState, TrapLayer
from crashguardpy.core.watchdog import WatchdogScheduler


class Guardian:
    """Crash diagnostics for one process.

    Args:
        config: Paths and thresholds. Defaults to GuardianConfig().
        work_source: Read accessor returning the host's in-flight work.
        storage: Crash log storage. Defaults to an NDJSON file at
            config.log_path.
        probe: Process counter source. Defaults to psutil.
        exit_func: Called with the exit status after a fatal event.
    """

    def __init__(
        self,
        config: GuardianConfig | None = None,
        *,
        work_source: WorkSource | None = None,
        storage: LogStoragePort | None = None,
        probe: ProcessProbePort | None = None,
        exit_func: Callable[[int], Any] = sys.exit,
    ) -> None:
        self.config = config or GuardianConfig()
        thresholds = self.config.thresholds
        self.logger = CrashSafeLogger(
            storage if storage is not None else NdjsonFileLogStorage(self.config.log_path)
        )
        self.collector = SnapshotCollector(
            self.logger,
            probe if probe is not None else PsutilProcessProbe(),
            work_source,
        )
        self.death_notes = DeathNoteKeeper(
            self.config.death_note_path,
            self.config.history_path,
            self.logger,
            self.collector,
        )
        self.lag_monitor = LoopLagMonitor(resolution=thresholds.lag_resolution)
        self.watchdog = WatchdogScheduler(
            self.logger,
            self.collector,
            thresholds,
            lag_source=self.lag_monitor.consume_mean_ms,
        )
        self.traps = TrapLayer(
            self.logger,
            self.collector,
            self.death_notes,
            exit_func=exit_func,
            fault_log_path=self.config.fault_log_path,
        )
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> DeathNote | None:
        """Run the post-mortem check, install traps and start the watchdog.

        Returns:
            The death note left by the previous process, if any.
        """
        if self._started:
            return None
        self._started = True
        previous = self.death_notes.check_post_mortem()
        self.traps.install(asyncio.get_running_loop())
        self.lag_monitor.start()
        self.watchdog.start()
        self.logger.info("Crash guardian initialized")
        return previous

    async def stop(self) -> None:
        """Stop the watchdog and restore the original process hooks."""
        await self._shutdown(keep_exit_hook=False)

    async def _shutdown(self, keep_exit_hook: bool) -> None:
        if not self._started:
            return
        await self.watchdog.stop()
        await self.lag_monitor.stop()
        self.traps.uninstall(keep_exit_hook=keep_exit_hook)
        self.logger.info("Crash guardian stopped")
        self._started = False

    async def __aenter__(self) -> "Guardian":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Stop the guardian, recording how the guarded block ended.

        An exception leaving the block is handled as an uncaught fault
        before the excepthook is removed, so it gets a death note and
        terminates the process. A SystemExit keeps its status for the
        "Process exiting" entry. Cancellation just stops the guardian,
        unless a trapped signal or fault is already unwinding the loop.
        """
        if exc is None or not self._started:
            await self.stop()
        elif isinstance(exc, SystemExit):
            self.traps.record_exit(exc.code)
            await self._shutdown(keep_exit_hook=True)
        elif isinstance(exc, Exception):
            try:
                self.traps.handle_uncaught_exception(type(exc), exc, tb)
            finally:
                await self._shutdown(keep_exit_hook=True)
        else:
            terminating = self.traps.state is not LifecycleState.RUNNING
            await self._shutdown(keep_exit_hook=terminating)
