"""End-to-end tests."""

from pathlib import Path
from subprocess import check_output, run, PIPE
import os
import sys

from pampy import match, _ as ANY

from xdprofile._cachegrind import parse_cachegrind_output, parse_functions
from xdprofile._testing import (
    parse_computerized_trace,
    parse_normal_trace,
    profile,
)

TEST_SCRIPTS = Path("tests") / "test-scripts"


def matches(record, pattern) -> bool:
    return match(record, pattern, True, default=False)


def test_auto_trace():
    """trace.auto traces the whole program, named after the script."""
    script = TEST_SCRIPTS / "work.py"
    output_dir = profile(
        script, settings={"trace.auto": "1", "trace.output_name": "trace.%s"}
    )
    assert os.listdir(output_dir) == ["trace.tests_test-scripts_work_py.xt"]
    records = parse_normal_trace(output_dir / "trace.tests_test-scripts_work_py.xt")
    script = str(script)

    main = [r for r in records if matches(r, (ANY, "main", ANY, ANY))]
    assert len(main) == 1
    work = [r for r in records if matches(r, (main[0][0] + 1, "work", script, ANY))]
    assert len(work) == 1
    leaves = [r for r in records if matches(r, (ANY, "leaf", script, 11))]
    assert len(leaves) == 5


def test_profile():
    """profiler.enable writes a cachegrind profile."""
    script = TEST_SCRIPTS / "work.py"
    output_dir = profile(
        script,
        settings={"profiler.enable": "1", "profiler.output_name": "cachegrind.out"},
    )
    path = output_dir / "cachegrind.out"
    with open(path) as f:
        assert set(parse_cachegrind_output(f)) == {"Time"}
    with open(path) as f:
        functions = parse_functions(f)
    script = str(script)
    assert (script, "work") in functions
    assert (script, "leaf") in functions


def test_trigger_required():
    """With trace.enable_trigger, nothing is traced unless triggered."""
    script = TEST_SCRIPTS / "work.py"
    settings = {"trace.enable_trigger": "1", "trace.output_name": "t"}
    output_dir = profile(script, settings=settings)
    assert os.listdir(output_dir) == []

    output_dir = profile(
        script, settings=settings, options=["--trigger", "XDEBUG_TRACE"]
    )
    assert os.listdir(output_dir) == ["t.xt"]


def test_disabled():
    """Nothing is written when xdprofile isn't enabled."""
    output_dir = profile(
        TEST_SCRIPTS / "work.py", settings={"enable": "0", "trace.auto": "1"}
    )
    assert os.listdir(output_dir) == []


def test_computerized_format():
    """trace.format=1 writes a computerized trace with balanced records."""
    output_dir = profile(
        TEST_SCRIPTS / "work.py",
        settings={"trace.auto": "1", "trace.format": "1", "trace.output_name": "t"},
    )
    records = parse_computerized_trace(output_dir / "t.xt")
    entries = [r for r in records if r[0] == "enter"]
    assert "leaf" in [r[2] for r in entries]
    assert len(entries) >= len([r for r in records if r[0] == "exit"])


def test_failing_program_still_writes_trace():
    """The trace is finished even when the program raises."""
    output_dir = profile(
        TEST_SCRIPTS / "work.py",
        "--fail",
        settings={"trace.auto": "1", "trace.output_name": "t"},
        expect_exit_code=1,
    )
    with open(output_dir / "t.xt") as f:
        contents = f.read()
    assert "TRACE END" in contents
    assert "-> main()" in contents


def test_run_module():
    """Modules can be run with -m."""
    output_dir = profile(
        "-m",
        "workpkg",
        settings={"trace.auto": "1", "trace.output_name": "t"},
        cwd=TEST_SCRIPTS,
    )
    functions = [r[1] for r in parse_normal_trace(output_dir / "t.xt")]
    assert "packaged" in functions


def test_reports_paths():
    """The written files are reported on stderr."""
    result = run(
        [
            "xdprofile",
            "-d",
            "enable=1",
            "-d",
            "trace.auto=1",
            "-d",
            "trace.output_dir=/tmp",
            "-d",
            "trace.output_name=xdprofile-e2e.%p.%r",
            "run",
            str(TEST_SCRIPTS / "work.py"),
        ],
        stderr=PIPE,
        check=True,
    )
    stderr = result.stderr.decode("utf-8")
    assert "=xdprofile= Wrote trace to /tmp/xdprofile-e2e." in stderr
    path = stderr.split("Wrote trace to ")[1].strip()
    assert os.path.exists(path)
    os.remove(path)


def test_api_from_program(tmp_path):
    """A program can trace part of itself through the API."""
    path = check_output(
        [sys.executable, str(TEST_SCRIPTS / "uses_api.py"), str(tmp_path)]
    ).decode("utf-8").strip()
    assert path == str(tmp_path / "api-trace.xt")
    functions = [r[1] for r in parse_normal_trace(path)]
    assert "inside" in functions
    assert "outside" not in functions
    assert functions[0] == "main"


def test_environment_configuration(tmp_path):
    """Options can be passed as environment variables."""
    env = dict(
        os.environ,
        XDPROFILE_ENABLE="1",
        XDPROFILE_PROFILER__ENABLE="1",
        XDPROFILE_PROFILER__OUTPUT_DIR=str(tmp_path),
        XDPROFILE_PROFILER__OUTPUT_NAME="cg.%%",
    )
    run(["xdprofile", "run", str(TEST_SCRIPTS / "work.py")], env=env, check=True)
    assert os.listdir(tmp_path) == ["cg.%"]
