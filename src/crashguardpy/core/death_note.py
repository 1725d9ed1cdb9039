"""Death note persistence and the startup post-mortem check.

The death note is a single marker file written while a process dies and
read back by the next process. It is written to a temporary sibling and
renamed into place, so the marker path holds either a complete note or
nothing.
"""

import os
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from crashguardpy.core.encoding.ndjson import (
    death_note_to_dict,
    decode_death_note,
    encode_death_note,
)
from crashguardpy.core.logs import CrashSafeLogger, fallback_console
from crashguardpy.core.models import DeathNote, ErrorInfo
from crashguardpy.core.snapshot import SnapshotCollector

HISTORY_PREFIX = "death_note-"


class DeathNoteKeeper:
    """Writes, reads and archives the death note marker.

    Args:
        marker_path: Well-known location of the live death note.
        history_dir: Directory receiving archived notes.
        logger: Crash log for confirmations and post-mortem alerts.
        collector: Source of the snapshot embedded in each note.
        clock: Source of unix timestamps.
    """

    def __init__(
        self,
        marker_path: str | Path,
        history_dir: str | Path,
        logger: CrashSafeLogger,
        collector: SnapshotCollector,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._marker = Path(marker_path)
        self._history_dir = Path(history_dir)
        self._logger = logger
        self._collector = collector
        self._clock = clock

    @property
    def marker_path(self) -> Path:
        return self._marker

    def pending(self) -> bool:
        """True if a death note is waiting for the post-mortem check."""
        return self._marker.exists()

    def write_death_note(
        self,
        reason: str,
        error: ErrorInfo | BaseException | None = None,
        graceful: bool = False,
    ) -> DeathNote | None:
        """Synchronously persist a death note, replacing any earlier one.

        Args:
            reason: Why the process is dying (e.g. UNCAUGHT_EXCEPTION).
            error: The exception, or its details, if one caused the death.
            graceful: True for a trapped termination signal.

        Returns:
            The note written, or None if it could not be persisted.
        """
        try:
            if isinstance(error, BaseException):
                error = ErrorInfo.from_exception(error)
            note = DeathNote(
                timestamp=self._clock(),
                pid=os.getpid(),
                reason=reason,
                snapshot=self._collector.collect(),
                error=error,
                graceful=graceful,
            )
            self._write_atomic(encode_death_note(note))
        except Exception as exc:
            fallback_console(f"Failed to write death note for {reason}", exc)
            return None
        self._logger.info(
            "Death note written", reason=reason, path=str(self._marker)
        )
        return note

    def _write_atomic(self, text: str) -> None:
        self._marker.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._marker.with_name(f"{self._marker.name}.{os.getpid()}.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._marker)
        finally:
            if tmp.exists():
                tmp.unlink()

    def check_post_mortem(self) -> DeathNote | None:
        """Report and archive the death note left by the previous process.

        Call once at startup, before the watchdog starts. A corrupt marker
        is reported on the console and left in place for inspection.

        Returns:
            The previous process's death note, or None if it exited cleanly
            or the marker could not be read.
        """
        try:
            if not self._marker.exists():
                return None
            note = decode_death_note(self._marker.read_text(encoding="utf-8"))
            payload = death_note_to_dict(note)
        # DeathNoteDecodeError and UnicodeDecodeError are both ValueErrors
        except (OSError, ValueError, OverflowError) as exc:
            fallback_console(f"Unreadable death note left at {self._marker}", exc)
            return None

        self._logger.alert("Previous process did not exit cleanly", death_note=payload)
        try:
            archived = self._archive()
        except OSError as exc:
            fallback_console(f"Failed to archive death note {self._marker}", exc)
        else:
            self._logger.info("Death note archived", path=str(archived))
        return note

    def _archive(self) -> Path:
        self._history_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.fromtimestamp(self._clock(), tz=UTC).strftime(
            "%Y%m%dT%H%M%S%fZ"
        )
        target = self._history_dir / f"{HISTORY_PREFIX}{stamp}.json"
        suffix = 1
        while target.exists():
            target = self._history_dir / f"{HISTORY_PREFIX}{stamp}-{suffix}.json"
            suffix += 1
        os.rename(self._marker, target)
        return target

    def history(self) -> list[Path]:
        """Archived death notes, oldest first."""
        if not self._history_dir.is_dir():
            return []
        return sorted(
            self._history_dir.glob(f"{HISTORY_PREFIX}*.json"),
            key=lambda p: (p.stat().st_mtime_ns, p.name),
        )
