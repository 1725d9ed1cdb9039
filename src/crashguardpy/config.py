"""Configuration for the crash guardian.

Thresholds and paths are fixed once the guardian starts. Defaults put
every file under ``logs/`` in the current working directory.
"""

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path

ENV_LOG_DIR = "CRASHGUARD_LOG_DIR"
ENV_LAG_THRESHOLD_MS = "CRASHGUARD_LAG_THRESHOLD_MS"
ENV_RSS_THRESHOLD_MB = "CRASHGUARD_RSS_THRESHOLD_MB"


@dataclass(frozen=True)
class WatchdogThresholds:
    """Alarm thresholds and sampling intervals for the watchdog.

    Attributes:
        lag_alarm_ms: Mean event loop lag that triggers a snapshot.
        rss_alarm_mb: Resident set size that triggers a snapshot.
        heartbeat_interval: Seconds between heartbeat entries.
        lag_sample_interval: Seconds between lag checks.
        memory_sample_interval: Seconds between memory checks.
        lag_resolution: Seconds between lag histogram probes.
    """

    lag_alarm_ms: float = 2000.0
    rss_alarm_mb: float = 800.0
    heartbeat_interval: float = 10.0
    lag_sample_interval: float = 5.0
    memory_sample_interval: float = 3.0
    lag_resolution: float = 0.02

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{f.name} must be a positive number, got {value!r}")


def _default_log_dir() -> Path:
    return Path.cwd() / "logs"


@dataclass(frozen=True)
class GuardianConfig:
    """Where the guardian keeps its files, and how it samples.

    Attributes:
        log_dir: Directory holding every file below.
        log_file: Name of the NDJSON crash log.
        death_note_file: Name of the death note marker.
        history_dir: Name of the directory of archived death notes.
        fault_log_file: Name of the faulthandler output file, or None to
            leave faulthandler alone.
        thresholds: Watchdog thresholds.
    """

    log_dir: Path = field(default_factory=_default_log_dir)
    log_file: str = "crash_log.log"
    death_note_file: str = "death_note.json"
    history_dir: str = "death_notes"
    fault_log_file: str | None = "fault.log"
    thresholds: WatchdogThresholds = field(default_factory=WatchdogThresholds)

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.log_file

    @property
    def death_note_path(self) -> Path:
        return self.log_dir / self.death_note_file

    @property
    def history_path(self) -> Path:
        return self.log_dir / self.history_dir

    @property
    def fault_log_path(self) -> Path | None:
        if self.fault_log_file is None:
            return None
        return self.log_dir / self.fault_log_file

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GuardianConfig":
        """Build a config, overriding defaults from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            GuardianConfig with any CRASHGUARD_* overrides applied.

        Raises:
            ValueError: If a numeric override is not a positive number.
        """
        env = os.environ if environ is None else environ
        thresholds = WatchdogThresholds(
            lag_alarm_ms=_float_env(env, ENV_LAG_THRESHOLD_MS, 2000.0),
            rss_alarm_mb=_float_env(env, ENV_RSS_THRESHOLD_MB, 800.0),
        )
        log_dir = env.get(ENV_LOG_DIR)
        if log_dir:
            return cls(log_dir=Path(log_dir), thresholds=thresholds)
        return cls(thresholds=thresholds)


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
