"""psutil adapter implementing ProcessProbePort."""

import psutil


class PsutilProcessProbe:
    """Reads OS counters of one process through psutil.

    Args:
        pid: Process to inspect. Defaults to the current process.
    """

    def __init__(self, pid: int | None = None) -> None:
        self._process = psutil.Process(pid)

    def memory(self) -> tuple[int, int]:
        info = self._process.memory_info()
        return info.rss, info.vms

    def cpu_times(self) -> tuple[float, float]:
        times = self._process.cpu_times()
        return times.user, times.system

    def load_average(self) -> tuple[float, float, float]:
        one, five, fifteen = psutil.getloadavg()
        return one, five, fifteen

    def create_time(self) -> float:
        return self._process.create_time()

    def handle_count(self) -> int:
        # num_fds() exists on POSIX, num_handles() on Windows
        if hasattr(self._process, "num_fds"):
            return self._process.num_fds()
        return self._process.num_handles()
