"""Tests for xdprofile._script."""

import sys

import pytest

from xdprofile._script import PARSER, main, parse_settings


def test_command_line_past_run():
    """
    When doing `xdprofile run`, all command-line arguments after the script
    can be passed on.
    """

    def passthrough_args(*args):
        args = ["run"] + list(args)
        return PARSER.parse_args(args).rest

    assert passthrough_args("script.py", "-d", "123") == ["script.py", "-d", "123"]
    assert passthrough_args("script.py", "-d", "123", "-m", "xxx") == [
        "script.py",
        "-d",
        "123",
        "-m",
        "xxx",
    ]
    assert passthrough_args("script.py", "--xxx=1", "-d", "2") == [
        "script.py",
        "--xxx=1",
        "-d",
        "2",
    ]
    assert passthrough_args("-m", "package", "-d", "123") == [
        "-m",
        "package",
        "-d",
        "123",
    ]


def test_settings_before_run():
    """-d and --trigger options before the subcommand are collected."""
    arguments = PARSER.parse_args(
        ["-d", "enable=1", "-d", "trace.auto=1", "--trigger", "T", "run", "x.py"]
    )
    assert parse_settings(arguments.settings) == {"enable": "1", "trace.auto": "1"}
    assert arguments.triggers == ["T"]
    assert arguments.rest == ["x.py"]


def test_parse_settings_values_may_contain_equals():
    assert parse_settings(["trace.output_name=a=b"]) == {"trace.output_name": "a=b"}


def test_parse_settings_requires_equals():
    with pytest.raises(SystemExit):
        parse_settings(["enable"])


def test_filename_command(capsys, monkeypatch):
    """`xdprofile filename` prints the expansion."""
    monkeypatch.setattr(
        sys,
        "argv",
        ["xdprofile", "filename", "trace.%%.%z", "--dir", "/out", "--suffix"],
    )
    main()
    assert capsys.readouterr().out == "/out/trace.%.%z.xt\n"


def test_summary_command(tmp_path, capsys, monkeypatch):
    """`xdprofile summary` prints totals and the most expensive functions."""
    path = tmp_path / "cachegrind.out"
    path.write_text(
        "version: 1\nevents: Time\n\n"
        "fl=/a.py\nfn=cheap\n1 5\n\n"
        "fl=/b.py\nfn=costly\n3 50\n\n"
        "summary: 55\n"
    )
    monkeypatch.setattr(sys, "argv", ["xdprofile", "summary", str(path), "--top", "1"])
    main()
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Time: 55"
    assert out[1].split() == ["50", "costly", "(/b.py)"]
    assert len(out) == 2
