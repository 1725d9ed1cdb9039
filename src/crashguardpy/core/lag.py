"""Event loop lag measurement.

A probe task sleeps for a fixed resolution and records how late it woke
up. While the loop is blocked by synchronous work the probe cannot run,
so the delay shows up as one large sample when the loop recovers.
"""

import asyncio
import contextlib


DEFAULT_LAG_BUCKETS_MS = [1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000]


class LagHistogram:
    """Running histogram of lag samples in milliseconds.

    Args:
        buckets: Upper bounds of the cumulative buckets, in ms.
    """

    def __init__(self, buckets: list[float] | None = None) -> None:
        self._boundaries = sorted(
            buckets if buckets is not None else DEFAULT_LAG_BUCKETS_MS
        )
        self.reset()

    def reset(self) -> None:
        self.count = 0
        self.total_ms = 0.0
        self.max_ms = 0.0
        self._bucket_counts = [0] * len(self._boundaries)

    def record(self, lag_ms: float) -> None:
        lag_ms = max(0.0, lag_ms)
        self.count += 1
        self.total_ms += lag_ms
        self.max_ms = max(self.max_ms, lag_ms)
        for i, boundary in enumerate(self._boundaries):
            if lag_ms <= boundary:
                self._bucket_counts[i] += 1

    @property
    def mean_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_ms / self.count

    def buckets(self) -> dict[str, int]:
        """Cumulative counts keyed by upper bound, plus "+Inf"."""
        result = {str(b): n for b, n in zip(self._boundaries, self._bucket_counts)}
        result["+Inf"] = self.count
        return result


class LoopLagMonitor:
    """Continuously measures scheduling delay of the running event loop.

    Args:
        resolution: Seconds between probes.
        histogram: Histogram receiving samples.
    """

    def __init__(
        self,
        resolution: float = 0.02,
        histogram: LagHistogram | None = None,
    ) -> None:
        self._resolution = resolution
        self.histogram = histogram if histogram is not None else LagHistogram()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start probing on the running loop.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        if self.running:
            return
        self.histogram.reset()
        self._task = asyncio.get_running_loop().create_task(
            self._probe(), name="crashguardpy-lag-monitor"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _probe(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            expected = loop.time() + self._resolution
            await asyncio.sleep(self._resolution)
            self.histogram.record((loop.time() - expected) * 1000)

    def consume_mean_ms(self) -> float:
        """Return the mean lag since the last call and start a new window."""
        mean = self.histogram.mean_ms
        self.histogram.reset()
        return mean
