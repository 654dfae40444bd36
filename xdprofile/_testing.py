"""Utility functions for testing."""

import re
from pathlib import Path
from subprocess import CalledProcessError, check_call
from tempfile import mkdtemp
from typing import Dict, List, Tuple, Union

from ._config import Config
from ._factory import ProfilerFactory
from ._request import RequestContext
from ._session import ProfilerSession

_NORMAL_LINE = re.compile(r"^(?P<columns>[ \d.]*?)(?P<indent> *)-> (?P<function>.*)\(\) (?P<location>.*):(?P<line>\d+)$")


def parse_normal_trace(path: Union[str, Path]) -> List[Tuple[int, str, str, int]]:
    """Parses a normal-format trace, returns list of (level, function, file, line)."""
    result = []
    with open(path) as f:
        for line in f:
            match = _NORMAL_LINE.match(line.rstrip("\n"))
            if match is None:
                continue
            level = len(match.group("indent")) // 2
            result.append(
                (
                    level,
                    match.group("function"),
                    match.group("location"),
                    int(match.group("line")),
                )
            )
    return result


def parse_computerized_trace(path: Union[str, Path]):
    """Parses a computerized trace.

    Returns list of ("enter", level, function, file, line) and
    ("exit", level) tuples, in file order.
    """
    result = []
    with open(path) as f:
        lines = iter(f)
        for line in lines:
            if line.startswith("TRACE START"):
                break
        for line in lines:
            if line.startswith("TRACE END"):
                break
            fields = line.rstrip("\n").split("\t")
            if not fields[0]:
                # Closing summary record.
                continue
            if fields[2] == "0":
                result.append(
                    ("enter", int(fields[0]), fields[5], fields[8], int(fields[9]))
                )
            else:
                result.append(("exit", int(fields[0])))
    return result


def make_session(
    tmp_path: Path,
    factory: ProfilerFactory = None,
    context: RequestContext = None,
    **options
) -> ProfilerSession:
    """A session writing traces and profiles into ``tmp_path``."""
    values = {
        "enable": True,
        "trace_output_dir": str(tmp_path),
        "profiler_output_dir": str(tmp_path),
    }
    values.update(options)
    return ProfilerSession(Config(**values), context=context, factory=factory)


def profile(
    *arguments: Union[str, Path],
    settings: Dict[str, str] = None,
    options=(),
    expect_exit_code=0,
    argv_prefix=(),
    **kwargs
) -> Path:
    """Run ``xdprofile run`` on given script, return path to output directory."""
    output = Path(mkdtemp())
    all_settings = {
        "enable": "1",
        "trace.output_dir": str(output),
        "profiler.output_dir": str(output),
    }
    all_settings.update(settings or {})
    argv = ["xdprofile"]
    for name, value in all_settings.items():
        argv.extend(["-d", f"{name}={value}"])
    argv.extend(options)
    try:
        check_call(
            list(argv_prefix) + argv + ["run"] + list(arguments),
            **kwargs,
        )
        exit_code = 0
    except CalledProcessError as e:
        exit_code = e.returncode
    assert exit_code == expect_exit_code

    return output
