"""Shared test fixtures for all test modules."""

from pathlib import Path

import pytest

from crashguardpy.adapters.storage.in_memory import InMemoryLogStorage
from crashguardpy.config import GuardianConfig
from crashguardpy.core.death_note import DeathNoteKeeper
from crashguardpy.core.logs import CrashSafeLogger
from crashguardpy.core.snapshot import SnapshotCollector
from tests.helpers import FakeProcessProbe


@pytest.fixture
def storage() -> InMemoryLogStorage:
    """Provide an empty in-memory crash log."""
    return InMemoryLogStorage()


@pytest.fixture
def crash_logger(storage: InMemoryLogStorage) -> CrashSafeLogger:
    return CrashSafeLogger(storage)


@pytest.fixture
def probe() -> FakeProcessProbe:
    return FakeProcessProbe()


@pytest.fixture
def collector(crash_logger: CrashSafeLogger, probe: FakeProcessProbe) -> SnapshotCollector:
    return SnapshotCollector(crash_logger, probe, clock=lambda: 1702300100.0)


@pytest.fixture
def marker_path(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "death_note.json"


@pytest.fixture
def history_dir(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "death_notes"


@pytest.fixture
def keeper(
    marker_path: Path,
    history_dir: Path,
    crash_logger: CrashSafeLogger,
    collector: SnapshotCollector,
) -> DeathNoteKeeper:
    return DeathNoteKeeper(marker_path, history_dir, crash_logger, collector)


@pytest.fixture
def config(tmp_path: Path) -> GuardianConfig:
    """Guardian config rooted in a temporary directory, without faulthandler."""
    return GuardianConfig(log_dir=tmp_path / "logs", fault_log_file=None)
