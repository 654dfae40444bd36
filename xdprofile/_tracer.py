"""Profilers: the objects that actually hook into Python and write files."""

import os
import sys
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from glob import glob
from types import FrameType
from typing import Dict, List, Optional

from ._cachegrind import Profile, write_profile
from ._memory import memory_usage
from ._report import COMPUTERIZED, HTML, NORMAL, TraceWriter, open_trace_writer

# Trace option bits:
TRACE_APPEND = 1
TRACE_COMPUTERIZED = 2
TRACE_HTML = 4
TRACE_NAKED_FILENAME = 8

# Profile option bits:
PROFILE_APPEND = 1

# Frames from these files are never traced.
_OWN_FILES = frozenset(
    glob(os.path.join(os.path.dirname(os.path.abspath(__file__)), "*.py"))
)


class Profiler(ABC):
    """What a profiler attached to a thread can do."""

    @abstractmethod
    def start_trace(self, filename: str, options: int):
        pass

    @abstractmethod
    def stop_trace(self):
        pass

    @abstractmethod
    def start_profile(self, filename: str, options: int):
        pass

    @abstractmethod
    def stop_profile(self):
        pass

    @abstractmethod
    def set_collect_memory(self, value: bool):
        pass

    @abstractmethod
    def set_collect_time(self, value: bool):
        pass

    @abstractmethod
    def is_tracing(self) -> bool:
        pass

    @abstractmethod
    def is_profiling(self) -> bool:
        pass

    @abstractmethod
    def tracing_filename(self) -> Optional[str]:
        pass

    @abstractmethod
    def profiling_filename(self) -> Optional[str]:
        pass

    def begin_frame(self, frame: Optional[FrameType]):
        """Mark ``frame`` as the outermost level of the trace."""

    def is_collecting(self) -> bool:
        """Is anything still being recorded?"""
        return self.is_tracing() or self.is_profiling()

    def release(self):
        """Stop everything; called when the profiler is detached."""
        if self.is_tracing():
            self.stop_trace()
        if self.is_profiling():
            self.stop_profile()


class _Call:
    """A function call that hasn't returned yet."""

    __slots__ = ("key", "number", "call_line", "start", "child_time")

    def __init__(self, key, number, call_line, start):
        self.key = key
        self.number = number
        self.call_line = call_line
        self.start = start
        self.child_time = 0.0


def _trace_format(options: int) -> int:
    if options & TRACE_HTML:
        return HTML
    if options & TRACE_COMPUTERIZED:
        return COMPUTERIZED
    return NORMAL


def _function_name(frame: FrameType) -> str:
    code = frame.f_code
    return getattr(code, "co_qualname", code.co_name)


def _function_key(frame: FrameType):
    code = frame.f_code
    return (code.co_filename, _function_name(frame), code.co_firstlineno)


def _call_site(frame: FrameType):
    """Where the function running in ``frame`` was called from."""
    caller = frame.f_back
    if caller is None:
        return ("", 0)
    return (caller.f_code.co_filename, caller.f_lineno or 0)


class XDebugProfiler(Profiler):
    """Traces and/or profiles Python function calls.

    Uses ``sys.setprofile()`` on the thread that starts it, and
    ``threading.setprofile()`` for threads started afterwards.
    """

    def __init__(self, clock=time.perf_counter, command: Optional[str] = None):
        self._clock = clock
        self._start_time = clock()
        self._command = command if command is not None else " ".join(sys.argv)
        self._lock = threading.RLock()
        self._stacks: Dict[int, List[_Call]] = {}
        self._function_count = 0
        self._hooked = False
        self._previous_thread_profile = None

        self._trace_writer: Optional[TraceWriter] = None
        self._tracing_filename: Optional[str] = None

        self._profile: Optional[Profile] = None
        self._profiling_filename: Optional[str] = None
        self._profile_append = False

        self.collect_memory = False
        self.collect_time = False

    # Capabilities

    def start_trace(self, filename: str, options: int):
        with self._lock:
            self._trace_writer = open_trace_writer(
                filename, _trace_format(options), bool(options & TRACE_APPEND)
            )
            self._tracing_filename = filename
            self._trace_writer.start()
        self._hook()

    def stop_trace(self):
        with self._lock:
            writer = self._trace_writer
            if writer is None:
                return
            self._trace_writer = None
            self._tracing_filename = None
            writer.finish(self._time_index(), self._memory())
            writer.close()
        self._maybe_unhook()

    def start_profile(self, filename: str, options: int):
        with self._lock:
            self._profile = Profile()
            self._profiling_filename = filename
            self._profile_append = bool(options & PROFILE_APPEND)
        self._hook()

    def stop_profile(self):
        with self._lock:
            profile = self._profile
            if profile is None:
                return
            filename = self._profiling_filename
            self._profile = None
            self._profiling_filename = None
        self._maybe_unhook()
        write_profile(profile, filename, self._profile_append, self._command)

    def set_collect_memory(self, value: bool):
        self.collect_memory = value

    def set_collect_time(self, value: bool):
        self.collect_time = value

    def is_tracing(self) -> bool:
        return self._trace_writer is not None

    def is_profiling(self) -> bool:
        return self._profile is not None

    def tracing_filename(self) -> Optional[str]:
        return self._tracing_filename

    def profiling_filename(self) -> Optional[str]:
        return self._profiling_filename

    def is_collecting(self) -> bool:
        return (
            self.is_tracing()
            or self.is_profiling()
            or self.collect_memory
            or self.collect_time
        )

    def begin_frame(self, frame: Optional[FrameType]):
        """Record ``frame`` as already entered, so its return gets traced."""
        if frame is None or frame.f_code.co_filename in _OWN_FILES:
            return
        if self._stacks.get(threading.get_ident()):
            # Already seen on entry.
            return
        self._enter(_function_key(frame), _call_site(frame))

    # Hook management

    def _hook(self):
        if self._hooked:
            return
        self._hooked = True
        self._previous_thread_profile = threading.getprofile()
        threading.setprofile(self._profile_hook)
        sys.setprofile(self._profile_hook)

    def _maybe_unhook(self):
        if not self._hooked or self.is_tracing() or self.is_profiling():
            return
        self._hooked = False
        sys.setprofile(None)
        threading.setprofile(self._previous_thread_profile)
        self._previous_thread_profile = None
        self._stacks.clear()

    def _time_index(self) -> Optional[float]:
        if not self.collect_time:
            return None
        return self._clock() - self._start_time

    def _memory(self) -> Optional[int]:
        if not self.collect_memory:
            return None
        return memory_usage()

    def _profile_hook(self, frame, event, arg):
        """Function passed to sys.setprofile()."""
        if not self._hooked:
            # Another thread still has the hook installed after we stopped.
            sys.setprofile(None)
            return
        if frame.f_code.co_filename in _OWN_FILES:
            return
        if event == "call":
            self._enter(_function_key(frame), _call_site(frame))
        elif event == "c_call":
            name = getattr(arg, "__qualname__", None) or getattr(
                arg, "__name__", repr(arg)
            )
            module = getattr(arg, "__module__", None)
            if module and module != "builtins":
                name = module + "." + name
            key = ("<builtin>", name, 0)
            self._enter(key, (frame.f_code.co_filename, frame.f_lineno or 0))
        elif event in ("return", "c_return", "c_exception"):
            self._exit()

    def _enter(self, key, location):
        now = self._clock()
        stack = self._stacks.setdefault(threading.get_ident(), [])
        with self._lock:
            self._function_count += 1
            call = _Call(key, self._function_count, location[1], now)
            stack.append(call)
            if self._trace_writer is not None:
                self._trace_writer.enter(
                    len(stack),
                    call.number,
                    self._time_index(),
                    self._memory(),
                    key[1],
                    location[0],
                    location[1],
                )

    def _exit(self):
        stack = self._stacks.get(threading.get_ident())
        if not stack:
            # Returning from a frame entered before we started.
            return
        now = self._clock()
        call = stack.pop()
        elapsed = now - call.start
        with self._lock:
            if self._trace_writer is not None:
                self._trace_writer.exit(
                    len(stack) + 1,
                    call.number,
                    self._time_index(),
                    self._memory(),
                )
            if self._profile is not None:
                self._profile.add_self_cost(
                    call.key, int((elapsed - call.child_time) * 1e6)
                )
                if stack:
                    parent = stack[-1]
                    parent.child_time += elapsed
                    self._profile.add_call(
                        parent.key, call.key, call.call_line, int(elapsed * 1e6)
                    )


@contextmanager
def disable_thread_pools():
    """
    Context manager that limits native thread pools (BLAS, OpenMP) to a single
    thread.

    Work done in native pool threads never reaches the profile hook, so its
    time would be silently charged to whichever Python call is waiting on it.
    """
    import threadpoolctl

    with threadpoolctl.threadpool_limits({"blas": 1, "openmp": 1}):
        yield
