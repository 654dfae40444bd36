"""
Per-request profiler lifecycle.

A ``ProfilerSession`` belongs to one request running on one thread. It
attaches a profiler from the ``ProfilerFactory`` when tracing or profiling is
wanted, and detaches it once nothing is being collected anymore, or at the
latest when the request ends:

    Detached --attach()--> Attached, idle <--> Attached, collecting
       ^                        |
       +-------detach()---------+
"""

import sys
import threading
from types import FrameType
from typing import Optional, Union

from ._config import Config
from ._coverage import CodeCoverage
from ._errors import ResourceConflict
from ._factory import FACTORY, ProfilerFactory, ProfilerKind
from ._filename import format_filename
from ._request import RequestContext
from ._tracer import (
    PROFILE_APPEND,
    TRACE_APPEND,
    TRACE_COMPUTERIZED,
    TRACE_HTML,
    TRACE_NAKED_FILENAME,
    Profiler,
)
from ._utils import current_time_micros, notice


class ProfilerSession:
    """Profiling state for a single request.

    Use it as a context manager to get ``request_init()`` on entry and
    ``request_shutdown()`` on exit, exceptions included.
    """

    def __init__(
        self,
        config: Config,
        context: Optional[RequestContext] = None,
        factory: Optional[ProfilerFactory] = None,
        coverage: Optional[CodeCoverage] = None,
        clock=current_time_micros,
    ):
        self.config = config
        self.context = context if context is not None else RequestContext()
        self.factory = factory if factory is not None else FACTORY
        self.coverage = coverage if coverage is not None else CodeCoverage()
        self.attached = False
        self.request_start_micros = 0
        self._clock = clock
        self._profiler: Optional[Profiler] = None
        self._thread_id: Optional[int] = None

    def __enter__(self):
        self.request_init()
        return self

    def __exit__(self, *exc_info):
        self.request_shutdown()

    @property
    def profiler(self) -> Profiler:
        """The attached profiler; only valid while attached."""
        assert self.attached
        return self._profiler

    # Request hooks

    def request_init(self):
        self.request_start_micros = self._clock()
        if self.config.enable and self.config.is_profiler_needed(self.context):
            self.attach()

    def request_shutdown(self):
        """Detach if still attached. Never raises."""
        if self.coverage.started:
            self.coverage.stop()
        self._detach_reporting_errors("at end of request")
        self.request_start_micros = 0

    # Attaching and detaching

    def attach(self):
        """Attach a profiler, and start whatever the configuration asks for.

        Raises ResourceConflict if the thread already has a profiler. If
        starting the trace or profile fails, the profiler is released again
        before the error propagates.
        """
        if not self.factory.start(ProfilerKind.XDEBUG):
            raise ResourceConflict(
                "Could not start xdprofile profiler. Another profiler is "
                "likely already attached to this thread."
            )
        self.attached = True
        self._thread_id = threading.get_ident()
        self._profiler = profiler = self.factory.current_profiler()
        self.config.add_collection_listener(self._thread_id, self._collection_changed)

        try:
            profiler.set_collect_memory(self.config.collect_memory)
            profiler.set_collect_time(self.config.collect_time)
            if self.config.is_profiling_needed(self.context):
                self._start_profiling(profiler)
            if self.config.is_tracing_needed(self.context):
                self._start_tracing(profiler)
                profiler.begin_frame(sys._getframe(1))
        except BaseException:
            self._detach_reporting_errors("after failing to start")
            raise

    def detach(self):
        """Release the profiler, stopping any tracing or profiling."""
        if not self.attached:
            return
        self.attached = False
        self.config.remove_collection_listener(
            self._thread_id, self._collection_changed
        )
        thread_id = self._thread_id
        self._profiler = None
        self._thread_id = None
        self.factory.stop(thread_id)

    def detach_if_idle(self):
        profiler = self._profiler
        if self.attached and profiler is not None and not profiler.is_collecting():
            self.detach()

    def _detach_reporting_errors(self, when: str):
        try:
            self.detach()
        except Exception as e:
            notice(f"Failed to release profiler {when}: {e!r}")

    def _collection_changed(self, name: str, value: bool):
        # Runs on whichever thread changed the option. Only the owning thread
        # detaches.
        profiler = self._profiler
        if profiler is None:
            return
        if name == "collect_memory":
            profiler.set_collect_memory(value)
        else:
            profiler.set_collect_time(value)
        if threading.get_ident() == self._thread_id:
            self.detach_if_idle()

    # Tracing

    def _start_tracing(
        self, profiler: Profiler, filename: Optional[str] = None, options: int = 0
    ) -> str:
        if self.config.trace_append:
            options |= TRACE_APPEND
        if self.config.trace_format == 1:
            options |= TRACE_COMPUTERIZED
        if self.config.trace_format == 2:
            options |= TRACE_HTML

        directory = None
        if filename is None:
            directory = self.config.trace_output_dir
            filename = self.config.trace_output_name

        suffix = not (options & TRACE_NAKED_FILENAME)
        path = format_filename(directory, filename, suffix, self.context)
        profiler.start_trace(path, options)
        return path

    def start_tracing(
        self,
        filename: Optional[str] = None,
        options: int = 0,
        frame: Optional[FrameType] = None,
    ) -> Union[str, bool]:
        """Start tracing, attaching first if needed.

        Returns the trace's path, or False if already tracing. ``frame`` is
        the frame tracing starts from, by default the caller's.
        """
        if not self.attached:
            self.attach()

        profiler = self.profiler
        if profiler.is_tracing():
            return False

        self._start_tracing(profiler, filename, options)
        profiler.begin_frame(frame if frame is not None else sys._getframe(1))
        return profiler.tracing_filename()

    def stop_tracing(self) -> Union[str, bool]:
        """Stop tracing; returns the trace's path, or False if not tracing."""
        if self.attached:
            profiler = self.profiler
            if profiler.is_tracing():
                filename = profiler.tracing_filename()
                profiler.stop_trace()
                self.detach_if_idle()
                return filename
        return False

    # Profiling

    def _start_profiling(self, profiler: Profiler) -> str:
        options = 0
        if self.config.profiler_append:
            options |= PROFILE_APPEND
        path = format_filename(
            self.config.profiler_output_dir,
            self.config.profiler_output_name,
            False,
            self.context,
        )
        profiler.start_profile(path, options)
        return path

    def start_profiling(self) -> Union[str, bool]:
        """Start profiling, attaching first if needed.

        Returns the profile's path, or False if already profiling.
        """
        if not self.attached:
            self.attach()
        profiler = self.profiler
        if profiler.is_profiling():
            return False
        return self._start_profiling(profiler)

    def stop_profiling(self) -> Union[str, bool]:
        """Stop profiling and write the profile out.

        Returns the profile's path, or False if not profiling.
        """
        if self.attached:
            profiler = self.profiler
            if profiler.is_profiling():
                filename = profiler.profiling_filename()
                profiler.stop_profile()
                self.detach_if_idle()
                return filename
        return False

    # Queries

    def is_tracing(self) -> bool:
        return self.attached and self.profiler.is_tracing()

    def is_profiling(self) -> bool:
        return self.attached and self.profiler.is_profiling()

    def is_collecting(self) -> bool:
        return self.attached and self.profiler.is_collecting()

    def current_trace_filename(self) -> Union[str, bool]:
        if self.is_tracing():
            return self.profiler.tracing_filename()
        return False

    def current_profile_filename(self) -> Union[str, bool]:
        if self.is_profiling():
            return self.profiler.profiling_filename()
        return False

    def elapsed_time_index(self) -> Union[float, bool]:
        """Seconds since the request started, or False if detached."""
        if not self.attached:
            return False
        return (self._clock() - self.request_start_micros) * 1.0e-6
