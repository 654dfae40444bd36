"""Memory usage of the current process."""

import sys

import psutil

_process = psutil.Process()


def memory_usage() -> int:
    """Current resident memory, in bytes."""
    return max(_process.memory_info().rss, 0)


def peak_memory_usage() -> int:
    """Peak resident memory, in bytes."""
    if sys.platform == "win32":
        return _process.memory_info().peak_wset
    import resource

    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    if sys.platform == "darwin":
        # Already bytes on macOS, kilobytes elsewhere.
        return peak
    return max(peak * 1024, memory_usage())
