"""Tests for xdprofile.api."""

import os
import sys
import threading
import warnings

import pytest

from xdprofile import api
from xdprofile._testing import make_session, parse_normal_trace


class Widget:
    def method(self):
        return helper()

    @classmethod
    def build(cls):
        return helper()


def helper():
    return (
        api.call_class(),
        api.call_function(),
        api.call_file(),
        api.call_line(),
    )


def caller_of_helper():
    return helper()


def traced_work():
    return sum(range(10))


def test_call_stack_from_method():
    """The call_* functions describe the caller's caller."""
    cls, function, filename, line = Widget().method()
    assert cls == "Widget"
    assert function == "method"
    assert filename == __file__
    assert line > 0


def test_call_stack_from_function():
    """Plain functions have no class."""
    cls, function, filename, line = caller_of_helper()
    assert cls == ""
    assert function == "caller_of_helper"


def test_call_stack_from_classmethod():
    assert Widget.build()[:2] == ("Widget", "build")


def test_call_stack_at_module_level():
    """Module-level code has no caller."""
    namespace = {"api": api}
    exec(
        compile(
            "result = (api.call_class(), api.call_function(), "
            "api.call_file(), api.call_line())",
            "/virtual/module.py",
            "exec",
        ),
        namespace,
    )
    assert namespace["result"] == (False, False, "/virtual/module.py", 0)


def test_call_function_main():
    """A function called from module-level code reports {main}."""
    namespace = {"helper": helper}
    exec(compile("result = helper()", "/virtual/main.py", "exec"), namespace)
    cls, function, filename, line = namespace["result"]
    assert function == "{main}"
    assert cls == ""
    assert filename == "/virtual/main.py"
    assert line == 1


def test_get_declared_vars():
    """All locals, including ones not assigned yet."""

    def f(a, b=1):
        c = 2
        result = api.get_declared_vars()
        if False:
            d = 3  # noqa
        return result

    assert f(1) == ["a", "b", "c", "result", "d"]


def test_get_stack_depth():
    """Deeper calls have a larger depth."""

    def nested():
        return api.get_stack_depth()

    assert nested() == api.get_stack_depth() + 1


def test_memory():
    """Memory usage is positive and peak is at least current."""
    usage = api.memory_usage()
    assert usage > 0
    assert api.peak_memory_usage() >= usage or sys.platform == "darwin"


def test_trace_api(tmp_path):
    """Start and stop a trace through the public functions."""
    session = make_session(tmp_path, trace_output_name="trace.%p")
    with session:
        assert api.stop_trace(session) is False
        path = api.start_trace(session)
        assert path == str(tmp_path / "trace.{}.xt".format(os.getpid()))
        assert api.start_trace(session) is False
        assert api.get_tracefile_name(session) == path
        assert api.is_collecting(session)
        traced_work()
        assert api.stop_trace(session) == path
        assert api.get_tracefile_name(session) is False
        assert not api.is_collecting(session)
    functions = [r[1] for r in parse_normal_trace(path)]
    assert "test_trace_api" in functions
    assert "traced_work" in functions


def test_tracing_context_manager(tmp_path):
    """tracing() stops the trace it started."""
    session = make_session(tmp_path)
    with session:
        naked = api.TRACE_NAKED_FILENAME
        with api.tracing(session, str(tmp_path / "t"), naked) as path:
            assert path == str(tmp_path / "t")
            traced_work()
        assert not session.attached
    assert "traced_work" in [r[1] for r in parse_normal_trace(path)]


def test_profiler_filename(tmp_path):
    """The profile filename is only reported while profiling."""
    session = make_session(
        tmp_path, profiler_enable=True, profiler_output_name="cg.out"
    )
    assert api.get_profiler_filename(session) is False
    with session:
        assert api.get_profiler_filename(session) == str(tmp_path / "cg.out")
        traced_work()
    assert api.get_profiler_filename(session) is False
    assert (tmp_path / "cg.out").stat().st_size > 0


def test_time_index(tmp_path):
    """Time index is non-negative while attached."""
    session = make_session(tmp_path, collect_time=True)
    with session:
        assert api.time_index(session) >= 0
    assert api.time_index(session) is False


def test_check_trigger_vars(tmp_path):
    """Triggers set during the request attach on demand."""
    session = make_session(tmp_path, profiler_enable_trigger=True)
    with session:
        assert not session.attached
        api.check_trigger_vars(session)
        assert not session.attached
        session.context.get["XDEBUG_PROFILE"] = "1"
        api.check_trigger_vars(session)
        assert session.attached
        assert session.is_profiling()
        # Already attached: nothing happens.
        api.check_trigger_vars(session)


def covered():
    x = 1
    return x + 1


def test_code_coverage(tmp_path):
    """Coverage records executed lines until stopped."""
    session = make_session(tmp_path)
    assert not api.code_coverage_started(session)
    assert api.get_code_coverage(session) == {}
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", api.NestedCoverageWarning)
        api.start_code_coverage(session)
    try:
        assert api.code_coverage_started(session)
        covered()
        report = api.get_code_coverage(session)
    finally:
        api.stop_code_coverage(session, cleanup=False)
    first_line = covered.__code__.co_firstlineno
    assert report[__file__][first_line + 1] == 1
    assert report[__file__][first_line + 2] == 1
    assert not api.code_coverage_started(session)
    # Stopped coverage reports nothing, and cleanup empties it:
    assert api.get_code_coverage(session) == {}
    assert session.coverage.report() != {}
    api.stop_code_coverage(session)
    assert session.coverage.report() == {}


def test_code_coverage_unsupported_options(tmp_path):
    """Option bits are rejected, and coverage stays off."""
    session = make_session(tmp_path)
    for options in (api.CC_UNUSED, api.CC_DEAD_CODE, api.CC_UNUSED | api.CC_DEAD_CODE):
        with pytest.raises(api.UnsupportedOption):
            api.start_code_coverage(session, options)
        assert not api.code_coverage_started(session)


def test_code_coverage_nested_warning(tmp_path):
    """Starting coverage under another trace function warns, but works."""
    session = make_session(tmp_path)

    def other_tracer(frame, event, arg):
        return None

    original = sys.gettrace()
    original_threads = threading.gettrace()
    sys.settrace(other_tracer)
    threading.settrace(other_tracer)
    try:
        with pytest.warns(api.NestedCoverageWarning):
            api.start_code_coverage(session)
        assert api.code_coverage_started(session)
        api.stop_code_coverage(session)
        assert sys.gettrace() is other_tracer
        assert threading.gettrace() is other_tracer
    finally:
        sys.settrace(original)
        threading.settrace(original_threads)


def test_shutdown_stops_coverage(tmp_path):
    """Coverage doesn't outlive the request."""
    session = make_session(tmp_path)
    original = sys.gettrace()
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", api.NestedCoverageWarning)
        with session:
            api.start_code_coverage(session)
    assert not api.code_coverage_started(session)
    assert sys.gettrace() is original


def test_unwritable_trace_directory(tmp_path):
    """A trace that can't be opened leaves no profiler or hook behind."""
    session = make_session(
        tmp_path,
        trace_auto=True,
        profiler_enable=True,
        trace_output_dir=str(tmp_path / "missing"),
    )
    original = sys.getprofile()
    with pytest.raises(OSError):
        with session:
            pass
    assert not session.attached
    assert session.factory.current_profiler() is None
    assert sys.getprofile() is original
