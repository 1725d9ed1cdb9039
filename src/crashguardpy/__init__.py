"""crashguardpy - crash diagnostics for long-running Python services."""

from crashguardpy.adapters.logging import CrashGuardHandler
from crashguardpy.adapters.psutil_probe import PsutilProcessProbe
from crashguardpy.adapters.storage import InMemoryLogStorage, NdjsonFileLogStorage
from crashguardpy.config import GuardianConfig, WatchdogThresholds
from crashguardpy.core.death_note import DeathNoteKeeper
from crashguardpy.core.lag import LagHistogram, LoopLagMonitor
from crashguardpy.core.logs import CrashSafeLogger
from crashguardpy.core.models import (
    CpuUsage,
    DeathNote,
    ErrorInfo,
    LogEntry,
    LogLevel,
    MemoryUsage,
    SystemSnapshot,
    WorkItem,
)
from crashguardpy.core.ports import LogStoragePort, ProcessProbePort
from crashguardpy.core.snapshot import SnapshotCollector
from crashguardpy.core.traps import LifecycleState, TrapLayer
from crashguardpy.core.watchdog import WatchdogScheduler
from crashguardpy.errors import CrashGuardError, DeathNoteDecodeError
from crashguardpy.guardian import Guardian

__all__ = [
    "CpuUsage",
    "CrashGuardError",
    "CrashGuardHandler",
    "CrashSafeLogger",
    "DeathNote",
    "DeathNoteDecodeError",
    "DeathNoteKeeper",
    "ErrorInfo",
    "Guardian",
    "GuardianConfig",
    "InMemoryLogStorage",
    "LagHistogram",
    "LifecycleState",
    "LogEntry",
    "LogLevel",
    "LogStoragePort",
    "LoopLagMonitor",
    "MemoryUsage",
    "NdjsonFileLogStorage",
    "ProcessProbePort",
    "PsutilProcessProbe",
    "SnapshotCollector",
    "SystemSnapshot",
    "TrapLayer",
    "WatchdogScheduler",
    "WatchdogThresholds",
    "WorkItem",
]
