"""
Registry of the profiler attached to each thread.

A thread has at most one profiler at a time, of whatever kind got there first;
everyone else is refused until it is released.
"""

import threading
from enum import Enum
from typing import Callable, Dict, Mapping, Optional

from ._tracer import Profiler, XDebugProfiler


class ProfilerKind(Enum):
    XDEBUG = "xdebug"
    EXTERNAL = "external"


DEFAULT_CONSTRUCTORS: Mapping[ProfilerKind, Callable[[], Profiler]] = {
    ProfilerKind.XDEBUG: XDebugProfiler,
}


class ProfilerFactory:
    """Hands out profilers, one per thread."""

    def __init__(
        self,
        constructors: Optional[Mapping[ProfilerKind, Callable[[], Profiler]]] = None,
    ):
        self._constructors = dict(
            DEFAULT_CONSTRUCTORS if constructors is None else constructors
        )
        self._lock = threading.Lock()
        self._profilers: Dict[int, Profiler] = {}

    def start(self, kind: ProfilerKind) -> bool:
        """Attach a new profiler of ``kind`` to the current thread.

        Returns False if the thread already has one.
        """
        thread_id = threading.get_ident()
        with self._lock:
            if thread_id in self._profilers:
                return False
            self._profilers[thread_id] = self._constructors[kind]()
        return True

    def stop(self, thread_id: Optional[int] = None):
        """Release a thread's profiler, stopping whatever it does.

        Defaults to the current thread.
        """
        if thread_id is None:
            thread_id = threading.get_ident()
        with self._lock:
            profiler = self._profilers.pop(thread_id, None)
        if profiler is not None:
            profiler.release()

    def current_profiler(self) -> Optional[Profiler]:
        return self._profilers.get(threading.get_ident())


# Shared by every session unless it is given its own:
FACTORY = ProfilerFactory()
