"""Tiny HTTP server wired to the crash guardian.

Run with:
    python examples/crash_demo.py

Endpoints:
    /health        - 200 OK
    /stress        - blocks the event loop for 3 seconds
    /crash-memory  - holds on to ~900MB until the process dies
    /reject        - leaves a failed task unretrieved
    /crash         - raises out of the event loop

Files are written under ./logs (override with CRASHGUARD_LOG_DIR).
Start the server again after /crash to see the post-mortem alert.
"""

import asyncio
import itertools
import time
from datetime import UTC, datetime

from crashguardpy import Guardian, GuardianConfig, WorkItem

# Requests currently being handled, read by the snapshot collector
active_requests: dict[int, WorkItem] = {}
_request_ids = itertools.count()
_hoard: list[bytes] = []


class Crash(Exception):
    pass


async def _fail_later() -> None:
    raise RuntimeError("nobody awaited me")


async def handle(
    reader: asyncio.StreamReader, writer: asyncio.StreamWriter
) -> None:
    request_line = (await reader.readline()).decode("latin-1").split()
    method, target = (request_line + ["GET", "/"])[:2]
    peer = writer.get_extra_info("peername")
    request_id = next(_request_ids)
    active_requests[request_id] = WorkItem(
        method=method,
        target=target,
        start_time=datetime.now(UTC).isoformat(),
        origin=str(peer[0]) if peer else "unknown",
    )
    try:
        if target == "/stress":
            time.sleep(3)
        elif target == "/crash-memory":
            _hoard.extend(bytes(1024 * 1024) for _ in range(900))
        elif target == "/reject":
            asyncio.ensure_future(_fail_later())
        elif target == "/crash":
            raise Crash("crash requested")
        writer.write(b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nOK")
        await writer.drain()
    finally:
        del active_requests[request_id]
        writer.close()


async def main() -> None:
    crashed: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    async def guarded(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            await handle(reader, writer)
        except Crash as exc:
            if not crashed.done():
                crashed.set_exception(exc)

    guardian = Guardian(
        GuardianConfig.from_env(),
        work_source=lambda: list(active_requests.values()),
    )
    await guardian.start()
    server = await asyncio.start_server(guarded, "127.0.0.1", 4000)
    print("listening on http://127.0.0.1:4000")
    async with server:
        # Re-raise a requested crash so it reaches sys.excepthook
        await crashed


if __name__ == "__main__":
    asyncio.run(main())
