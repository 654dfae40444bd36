"""
Line coverage collection.

A thin wrapper around ``sys.settrace``: every executed line is recorded as
``{filename: {lineno: 1}}``. Threads started while coverage is on are
covered too.
"""

import sys
import threading
from collections import defaultdict
from typing import Dict


class CodeCoverage:
    """Collects executed lines for the threads it is started on."""

    def __init__(self):
        self._lines = defaultdict(set)
        self._lock = threading.Lock()
        self.started = False
        self._previous_trace = None
        self._previous_thread_trace = None

    def _trace(self, frame, event, arg):
        if event == "call":
            return self._trace_lines
        return None

    def _trace_lines(self, frame, event, arg):
        if event == "line":
            with self._lock:
                self._lines[frame.f_code.co_filename].add(frame.f_lineno)
        return self._trace_lines

    def is_nested(self) -> bool:
        """True if some other trace function is already installed."""
        current = sys.gettrace()
        return current is not None and getattr(current, "__self__", None) is not self

    def start(self):
        if self.started:
            return
        self._previous_trace = sys.gettrace()
        self._previous_thread_trace = threading.gettrace()
        self.started = True
        threading.settrace(self._trace)
        sys.settrace(self._trace)
        # The frame calling start() is already running, so it needs its own
        # line tracing to record anything before it returns.
        frame = sys._getframe(1)
        while frame is not None:
            frame.f_trace = self._trace_lines
            frame = frame.f_back

    def stop(self):
        if not self.started:
            return
        self.started = False
        sys.settrace(self._previous_trace)
        threading.settrace(self._previous_thread_trace)
        frame = sys._getframe(1)
        while frame is not None:
            if frame.f_trace == self._trace_lines:
                frame.f_trace = None
            frame = frame.f_back
        self._previous_trace = None
        self._previous_thread_trace = None

    def reset(self):
        with self._lock:
            self._lines.clear()

    def report(self) -> Dict[str, Dict[int, int]]:
        with self._lock:
            return {
                filename: {line: 1 for line in sorted(lines)}
                for filename, lines in self._lines.items()
            }
