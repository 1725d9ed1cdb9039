"""Append-only NDJSON file storage for the crash log."""

import logging
from collections.abc import Iterator
from pathlib import Path

from crashguardpy.core.encoding.ndjson import decode_entry, encode_entry
from crashguardpy.core.models import LogEntry

logger = logging.getLogger(__name__)


class NdjsonFileLogStorage:
    """File implementation of LogStoragePort.

    Each entry is one JSON object followed by a newline. Every write opens,
    appends and closes the file so nothing sits in a buffer when the
    process dies. The directory and file are created on first use.

    Args:
        path: Location of the log file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._ready = False

    @property
    def path(self) -> Path:
        return self._path

    def ensure(self) -> None:
        """Create the log directory and an empty log file if missing."""
        if self._ready:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch(exist_ok=True)
        self._ready = True

    def write(self, entry: LogEntry) -> None:
        """Append a log entry to the file."""
        self.ensure()
        with self._path.open("a", encoding="utf-8") as f:
            f.write(encode_entry(entry))

    def read(self, since: float = 0) -> Iterator[LogEntry]:
        """Read log entries since the given timestamp, in append order.

        Lines that do not decode (for example the torn last line of a
        killed process) are skipped.
        """
        if not self._path.exists():
            return
        with self._path.open(encoding="utf-8", errors="replace") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    entry = decode_entry(line)
                except ValueError:
                    logger.debug("Skipping corrupt line %d in %s", lineno, self._path)
                    continue
                if entry.timestamp > since:
                    yield entry
