"""Tests for the Guardian lifecycle."""

import asyncio
import atexit
import json
import signal
import sys
import time
from pathlib import Path

import pytest

from crashguardpy import Guardian, GuardianConfig, WatchdogThresholds
from crashguardpy.adapters.storage.in_memory import InMemoryLogStorage
from crashguardpy.core.models import LogLevel
from crashguardpy.core.traps import UNCAUGHT_EXCEPTION
from crashguardpy.core.watchdog import EVENT_LOOP_BLOCKED
from tests.helpers import FakeProcessProbe, entries_at


def _guardian(
    config: GuardianConfig,
    storage: InMemoryLogStorage,
    exits: list[int] | None = None,
) -> Guardian:
    return Guardian(
        config,
        storage=storage,
        probe=FakeProcessProbe(),
        exit_func=(lambda code: None) if exits is None else exits.append,
    )


@pytest.mark.core
class TestGuardian:
    """Tests for Guardian start/stop."""

    @pytest.mark.asyncio
    async def test_start_without_previous_note(
        self, config: GuardianConfig, storage: InMemoryLogStorage
    ) -> None:
        """A first start logs only the initialization entry."""
        guardian = _guardian(config, storage)

        previous = await guardian.start()
        try:
            assert previous is None
            assert guardian.started
            assert guardian.watchdog.running
            assert guardian.lag_monitor.running
            assert [e.message for e in storage.read()] == ["Crash guardian initialized"]
        finally:
            await guardian.stop()

    @pytest.mark.asyncio
    async def test_start_reports_previous_death_before_initializing(
        self, config: GuardianConfig, storage: InMemoryLogStorage
    ) -> None:
        """The previous death is alerted before the initialized entry."""
        earlier = _guardian(config, InMemoryLogStorage())
        earlier.death_notes.write_death_note("SIGNAL_SIGTERM", graceful=True)

        guardian = _guardian(config, storage)
        previous = await guardian.start()
        await guardian.stop()

        assert previous is not None
        assert previous.reason == "SIGNAL_SIGTERM"
        messages = [e.message for e in storage.read()]
        assert messages.index("Previous process did not exit cleanly") < messages.index(
            "Crash guardian initialized"
        )
        assert not config.death_note_path.exists()
        assert len(guardian.death_notes.history()) == 1

    @pytest.mark.asyncio
    async def test_second_start_is_ignored(
        self, config: GuardianConfig, storage: InMemoryLogStorage
    ) -> None:
        """Starting twice initializes once."""
        guardian = _guardian(config, storage)

        await guardian.start()
        assert await guardian.start() is None
        await guardian.stop()

        assert [e.message for e in storage.read()].count("Crash guardian initialized") == 1

    @pytest.mark.asyncio
    async def test_stop_restores_process_hooks(
        self, config: GuardianConfig, storage: InMemoryLogStorage
    ) -> None:
        """Leaving the context restores hooks and stops the watchdog."""
        previous_hook = sys.excepthook
        previous_sigterm = signal.getsignal(signal.SIGTERM)

        async with _guardian(config, storage) as guardian:
            assert sys.excepthook == guardian.traps.handle_uncaught_exception

        assert not guardian.started
        assert not guardian.watchdog.running
        assert sys.excepthook is previous_hook
        assert signal.getsignal(signal.SIGTERM) == previous_sigterm
        assert list(storage.read())[-1].message == "Crash guardian stopped"

    @pytest.mark.asyncio
    async def test_blocked_loop_is_snapshotted(
        self, tmp_path: Path, storage: InMemoryLogStorage
    ) -> None:
        """A blocking call inside the guarded block is snapshotted."""
        config = GuardianConfig(
            log_dir=tmp_path / "logs",
            fault_log_file=None,
            thresholds=WatchdogThresholds(
                lag_alarm_ms=50.0,
                heartbeat_interval=60.0,
                lag_sample_interval=0.5,
                memory_sample_interval=60.0,
                lag_resolution=0.01,
            ),
        )
        async with _guardian(config, storage):
            await asyncio.sleep(0.05)
            time.sleep(0.6)  # starve the loop
            await asyncio.sleep(0.1)

        snapshots = entries_at(storage, LogLevel.SNAPSHOT)
        assert [e.message for e in snapshots] == [EVENT_LOOP_BLOCKED]

    def test_default_storage_is_the_configured_log_file(
        self, config: GuardianConfig
    ) -> None:
        """Without storage the crash log is config.log_path."""
        guardian = Guardian(config, probe=FakeProcessProbe())

        entry = guardian.logger.info("hello")

        assert entry is not None
        assert config.log_path.exists()
        assert '"message": "hello"' in config.log_path.read_text()


@pytest.mark.core
class TestGuardedBlockExit:
    """Tests for how the async with block ends."""

    @pytest.mark.asyncio
    async def test_exception_leaving_block_gets_death_note(
        self, config: GuardianConfig, storage: InMemoryLogStorage
    ) -> None:
        """An exception escaping the block is recorded before hooks are removed."""
        previous_hook = sys.excepthook
        exits: list[int] = []
        guardian = _guardian(config, storage, exits)
        try:
            with pytest.raises(RuntimeError, match="boom"):
                async with guardian:
                    raise RuntimeError("boom")
        finally:
            atexit.unregister(guardian.traps.handle_exit)

        note = json.loads(config.death_note_path.read_text())
        assert note["reason"] == UNCAUGHT_EXCEPTION
        assert note["error"]["message"] == "boom"
        messages = [e.message for e in storage.read()]
        assert messages.index(UNCAUGHT_EXCEPTION) < messages.index("Crash guardian stopped")
        [fatal] = entries_at(storage, LogLevel.FATAL)
        assert fatal.extra == {"type": "RuntimeError", "error": "boom"}
        assert exits == [1]
        assert not guardian.started
        assert sys.excepthook is previous_hook

    @pytest.mark.asyncio
    async def test_system_exit_status_is_kept_for_exit_entry(
        self, config: GuardianConfig, storage: InMemoryLogStorage
    ) -> None:
        """sys.exit(3) inside the block is logged with status 3 at exit."""
        guardian = _guardian(config, storage)
        try:
            with pytest.raises(SystemExit):
                async with guardian:
                    sys.exit(3)
        finally:
            atexit.unregister(guardian.traps.handle_exit)

        assert guardian.traps.exit_code == 3
        assert not config.death_note_path.exists()

        guardian.traps.handle_exit()
        last = list(storage.read())[-1]
        assert last.message == "Process exiting"
        assert last.extra == {"exit_code": 3}

    @pytest.mark.asyncio
    async def test_cancellation_just_stops(
        self, config: GuardianConfig, storage: InMemoryLogStorage
    ) -> None:
        """A cancelled block stops the guardian without a death note."""
        exits: list[int] = []
        guardian = _guardian(config, storage, exits)

        with pytest.raises(asyncio.CancelledError):
            async with guardian:
                raise asyncio.CancelledError

        assert not guardian.started
        assert not config.death_note_path.exists()
        assert exits == []
        assert guardian.traps.exit_code is None
