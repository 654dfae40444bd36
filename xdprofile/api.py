"""
Public API for xdprofile.

Functions that depend on request state take the request's ``ProfilerSession``
as their first argument:

    from xdprofile.api import ProfilerSession, load_config, start_trace, stop_trace

    with ProfilerSession(load_config({"enable": True})) as session:
        start_trace(session, "/tmp/mytrace")
        ...
        stop_trace(session)

Results follow xdebug's conventions: "nothing to report" is ``False``, never
an exception. Exceptions are only raised for conditions that must not be
ignored, e.g. a conflicting profiler (``ResourceConflict``).
"""

# Design invariant: this should be importable without side effects; nothing
# gets hooked until a session attaches a profiler.

import sys
import warnings
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Union

from . import _memory, _stack
from ._config import Config, load_config, load_config_from_environ
from ._errors import (
    NestedCoverageWarning,
    ResourceConflict,
    UnsupportedOption,
    XDProfileError,
)
from ._request import RequestContext
from ._session import ProfilerSession
from ._tracer import (
    PROFILE_APPEND,
    TRACE_APPEND,
    TRACE_COMPUTERIZED,
    TRACE_HTML,
    TRACE_NAKED_FILENAME,
)

# Coverage option bits, neither of which is supported:
CC_UNUSED = 1
CC_DEAD_CODE = 2


# Tracing and profiling


def start_trace(
    session: ProfilerSession, trace_file: Optional[str] = None, options: int = 0
) -> Union[str, bool]:
    """Start tracing function calls.

    ``trace_file`` is a filename format string; if not given the configured
    trace directory and name are used. Returns the path of the trace file, or
    False if tracing was already on.
    """
    return session.start_tracing(trace_file, options, frame=sys._getframe(1))


def stop_trace(session: ProfilerSession) -> Union[str, bool]:
    """Stop tracing; returns the trace file's path, or False."""
    return session.stop_tracing()


def get_tracefile_name(session: ProfilerSession) -> Union[str, bool]:
    return session.current_trace_filename()


def get_profiler_filename(session: ProfilerSession) -> Union[str, bool]:
    return session.current_profile_filename()


def is_collecting(session: ProfilerSession) -> bool:
    """Is a profiler attached and recording anything?"""
    return session.is_collecting()


def time_index(session: ProfilerSession) -> Union[float, bool]:
    """Seconds since the request started."""
    return session.elapsed_time_index()


def check_trigger_vars(session: ProfilerSession):
    """Attach the profiler if request variables set since startup ask for it."""
    config = session.config
    if config.enable and not session.attached and config.is_profiler_needed(
        session.context
    ):
        session.attach()


@contextmanager
def tracing(
    session: ProfilerSession, trace_file: Optional[str] = None, options: int = 0
) -> Iterator[Union[str, bool]]:
    """Context manager that traces the code inside it.

    Yields the trace file's path, or False if a trace was already running, in
    which case that trace is left running on exit.
    """
    path = session.start_tracing(trace_file, options, frame=sys._getframe(2))
    try:
        yield path
    finally:
        if path is not False:
            session.stop_tracing()


# Code coverage


def start_code_coverage(session: ProfilerSession, options: int = 0):
    """Start collecting line coverage for the current thread.

    Raises UnsupportedOption for any option bits, since neither CC_UNUSED nor
    CC_DEAD_CODE are implemented.
    """
    if options != 0:
        raise UnsupportedOption(
            "CC_UNUSED and CC_DEAD_CODE constants are not currently supported."
        )
    coverage = session.coverage
    nested = coverage.is_nested()
    coverage.start()
    if nested:
        warnings.warn(
            "Starting code coverage while another trace function is active "
            "may cause unpredictable results",
            NestedCoverageWarning,
            stacklevel=2,
        )


def stop_code_coverage(session: ProfilerSession, cleanup: bool = True):
    session.coverage.stop()
    if cleanup:
        session.coverage.reset()


def code_coverage_started(session: ProfilerSession) -> bool:
    return session.coverage.started


def get_code_coverage(session: ProfilerSession) -> Dict[str, Dict[int, int]]:
    """Map of filename to executed lines, empty if coverage isn't on."""
    if session.coverage.started:
        return session.coverage.report()
    return {}


# Call stack. Each of these describes the caller of the function that calls
# them.


def call_class() -> Union[str, bool]:
    return _stack.call_class(sys._getframe(1))


def call_function() -> Union[str, bool]:
    return _stack.call_function(sys._getframe(1))


def call_file() -> str:
    return _stack.call_file(sys._getframe(1))


def call_line() -> int:
    return _stack.call_line(sys._getframe(1))


def get_declared_vars() -> List[str]:
    """Local variable names of the calling function."""
    return _stack.declared_vars(sys._getframe(1))


def get_stack_depth() -> int:
    """How many frames deep the calling function is."""
    return _stack.stack_depth(sys._getframe(1))


# Memory


def memory_usage() -> int:
    return _memory.memory_usage()


def peak_memory_usage() -> int:
    return _memory.peak_memory_usage()


__all__ = [
    "CC_DEAD_CODE",
    "CC_UNUSED",
    "PROFILE_APPEND",
    "TRACE_APPEND",
    "TRACE_COMPUTERIZED",
    "TRACE_HTML",
    "TRACE_NAKED_FILENAME",
    "Config",
    "NestedCoverageWarning",
    "ProfilerSession",
    "RequestContext",
    "ResourceConflict",
    "UnsupportedOption",
    "XDProfileError",
    "call_class",
    "call_file",
    "call_function",
    "call_line",
    "check_trigger_vars",
    "code_coverage_started",
    "get_code_coverage",
    "get_declared_vars",
    "get_profiler_filename",
    "get_stack_depth",
    "get_tracefile_name",
    "is_collecting",
    "load_config",
    "load_config_from_environ",
    "memory_usage",
    "peak_memory_usage",
    "start_code_coverage",
    "start_trace",
    "stop_code_coverage",
    "stop_trace",
    "time_index",
    "tracing",
]
