"""JSON encoders for crash log entries and death notes."""

import json
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

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
from crashguardpy.errors import DeathNoteDecodeError

_WORK_ITEM_KEYS = ("method", "target", "start_time", "origin")


def format_time(timestamp: float) -> str:
    """Format a unix timestamp as ISO-8601 UTC."""
    return datetime.fromtimestamp(timestamp, tz=UTC).isoformat(
        timespec="microseconds"
    )


def _drop_none(obj: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in obj.items() if value is not None}


def work_item_to_dict(item: WorkItem | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(item, WorkItem):
        return {key: getattr(item, key) for key in _WORK_ITEM_KEYS}
    return dict(item)


def snapshot_to_dict(snapshot: SystemSnapshot) -> dict[str, Any]:
    """Convert a snapshot to a JSON-ready dict, omitting absent metrics."""
    memory = snapshot.memory_usage
    cpu = snapshot.cpu_usage
    work = snapshot.ongoing_work_items
    return _drop_none(
        {
            "process_uptime": snapshot.process_uptime,
            "memory_usage": None
            if memory is None
            else _drop_none(
                {"rss": memory.rss, "vms": memory.vms, "heap_used": memory.heap_used}
            ),
            "cpu_usage": None
            if cpu is None
            else {"user": cpu.user, "system": cpu.system},
            "load_average": None
            if snapshot.load_average is None
            else list(snapshot.load_average),
            "heap_statistics": snapshot.heap_statistics,
            "active_handle_count": snapshot.active_handle_count,
            "active_request_count": snapshot.active_request_count,
            "ongoing_work_items": None
            if work is None
            else [work_item_to_dict(item) for item in work],
        }
    )


def _work_item_from_dict(data: Mapping[str, Any]) -> WorkItem | dict[str, Any]:
    if set(data) == set(_WORK_ITEM_KEYS):
        return WorkItem(**data)
    return dict(data)


def snapshot_from_dict(data: Mapping[str, Any]) -> SystemSnapshot:
    """Rebuild a snapshot from snapshot_to_dict output."""
    memory = data.get("memory_usage")
    cpu = data.get("cpu_usage")
    load = data.get("load_average")
    work = data.get("ongoing_work_items")
    return SystemSnapshot(
        process_uptime=float(data["process_uptime"]),
        memory_usage=None
        if memory is None
        else MemoryUsage(
            rss=memory["rss"], vms=memory["vms"], heap_used=memory.get("heap_used")
        ),
        cpu_usage=None if cpu is None else CpuUsage(cpu["user"], cpu["system"]),
        load_average=None if load is None else (load[0], load[1], load[2]),
        heap_statistics=data.get("heap_statistics"),
        active_handle_count=data.get("active_handle_count"),
        active_request_count=data.get("active_request_count"),
        ongoing_work_items=None
        if work is None
        else tuple(_work_item_from_dict(item) for item in work),
    )


def encode_entry(entry: LogEntry) -> str:
    """Encode one log entry as a newline-terminated JSON line."""
    obj = {
        "time": format_time(entry.timestamp),
        "timestamp": entry.timestamp,
        "pid": entry.pid,
        "level": str(entry.level),
        "message": entry.message,
        "extra": entry.extra,
    }
    return json.dumps(obj, default=str) + "\n"


def encode_logs(entries: Iterable[LogEntry]) -> str:
    """Encode log entries to newline-delimited JSON.

    Args:
        entries: An iterable of LogEntry objects.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no entries.
    """
    return "".join(encode_entry(entry) for entry in entries)


def decode_entry(line: str) -> LogEntry:
    """Decode one NDJSON line into a LogEntry.

    Raises:
        ValueError: If the line is not a valid log entry.
    """
    try:
        obj = json.loads(line)
        if "timestamp" in obj:
            timestamp = float(obj["timestamp"])
        else:
            timestamp = datetime.fromisoformat(obj["time"]).timestamp()
        return LogEntry(
            timestamp=timestamp,
            pid=int(obj["pid"]),
            level=LogLevel(obj["level"]),
            message=str(obj["message"]),
            extra=dict(obj.get("extra") or {}),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise ValueError(f"malformed log entry: {exc}") from exc


def encode_death_note(note: DeathNote) -> str:
    """Encode a death note as indented JSON."""
    error = note.error
    obj = _drop_none(
        {
            "time": format_time(note.timestamp),
            "timestamp": note.timestamp,
            "pid": note.pid,
            "reason": note.reason,
            "graceful": note.graceful,
            "error": None
            if error is None
            else {
                "type": error.type,
                "message": error.message,
                "stack_trace": error.stack_trace,
            },
            "snapshot": snapshot_to_dict(note.snapshot),
        }
    )
    return json.dumps(obj, indent=2, default=str) + "\n"


def death_note_to_dict(note: DeathNote) -> dict[str, Any]:
    """Return the JSON-ready dict form of a death note."""
    result: dict[str, Any] = json.loads(encode_death_note(note))
    return result


def decode_death_note(text: str) -> DeathNote:
    """Parse a death note marker.

    Raises:
        DeathNoteDecodeError: If the text is not a complete death note, or
            its timestamp is outside the platform's representable range.
    """
    try:
        obj = json.loads(text)
        error = obj.get("error")
        note = DeathNote(
            timestamp=float(obj["timestamp"]),
            pid=int(obj["pid"]),
            reason=str(obj["reason"]),
            graceful=bool(obj.get("graceful", False)),
            error=None
            if error is None
            else ErrorInfo(
                type=error.get("type", "Exception"),
                message=error["message"],
                stack_trace=error.get("stack_trace", ""),
            ),
            snapshot=snapshot_from_dict(obj["snapshot"]),
        )
        format_time(note.timestamp)
    except (
        ValueError,
        KeyError,
        TypeError,
        AttributeError,
        IndexError,
        OverflowError,
        OSError,
    ) as exc:
        raise DeathNoteDecodeError(f"corrupt death note: {exc}") from exc
    return note
