"""
Command-line tools.

``xdprofile run`` runs a Python program as a single request, with tracing and
profiling configured via ``XDPROFILE_*`` environment variables and ``-d``
settings.
"""

import sys
from argparse import ArgumentParser, RawDescriptionHelpFormatter, REMAINDER
from contextlib import nullcontext
from os import environ, getcwd
from os.path import abspath, dirname
import runpy
from typing import Dict, List

from ._cachegrind import parse_cachegrind_output, parse_functions
from ._config import environ_name, load_config, settings_from_environ
from ._filename import format_filename
from ._request import RequestContext, SCRIPT_NAME
from ._session import ProfilerSession
from ._tracer import disable_thread_pools
from ._utils import notice
from . import __version__


HELP = """\
If you have a program that you usually run like this:

  $ python yourprogram.py --the-arg=x

Trace it like this:

  $ xdprofile -d enable=1 -d trace.auto=1 run yourprogram.py --the-arg=x

If you have a program that you usually run like this:

  $ python -m yourpackage --your-arg=2

Profile it like this:

  $ xdprofile -d enable=1 -d profiler.enable=1 run -m yourpackage --your-arg=2

Every option can also be set with an environment variable, e.g.
{example}=/var/tmp for trace.output_dir.

Output filenames are format strings; see what one expands to with:

  $ xdprofile filename 'trace.%p.%t'
""".format(
    example=environ_name("trace.output_dir")
)


PARSER = ArgumentParser(
    usage="xdprofile [-d name=value]... run [-m module | /path/to/script.py ] [arg] ...",
    epilog=HELP,
    formatter_class=RawDescriptionHelpFormatter,
    allow_abbrev=False,
)
PARSER.add_argument("--version", action="version", version=__version__)
PARSER.add_argument(
    "-d",
    dest="settings",
    action="append",
    default=[],
    metavar="NAME=VALUE",
    help="Set a configuration option, e.g. -d trace.format=1",
)
PARSER.add_argument(
    "--trigger",
    dest="triggers",
    action="append",
    default=[],
    metavar="NAME",
    help="Pretend the request has this GET parameter, e.g. XDEBUG_PROFILE",
)
PARSER.add_argument(
    "--session-name",
    default=None,
    help="Cookie that holds the session id, used by %%S in filenames",
)
PARSER.add_argument(
    "--keep-thread-pools",
    action="store_true",
    default=False,
    help="Don't limit native thread pools (BLAS, OpenMP) to one thread",
)
subparsers = PARSER.add_subparsers(help="sub-command help")
parser_run = subparsers.add_parser(
    "run",
    help="Run a Python script or package as one request",
    prefix_chars=[""],
    add_help=False,
)
parser_run.set_defaults(command="run")
parser_run.add_argument("rest", nargs=REMAINDER)
parser_filename = subparsers.add_parser(
    "filename", help="Print what a filename format string expands to"
)
parser_filename.set_defaults(command="filename")
parser_filename.add_argument("format")
parser_filename.add_argument("--dir", default=None, help="Directory to prefix")
parser_filename.add_argument(
    "--suffix", action="store_true", default=False, help="Add the .xt suffix"
)
parser_summary = subparsers.add_parser(
    "summary", help="Print totals from a cachegrind profile"
)
parser_summary.set_defaults(command="summary")
parser_summary.add_argument("path")
parser_summary.add_argument(
    "--top", type=int, default=10, help="Number of functions to list"
)
del subparsers, parser_run, parser_filename, parser_summary


def parse_settings(settings: List[str]) -> Dict[str, str]:
    """Turn ["name=value", ...] into a dict."""
    result = {}
    for setting in settings:
        name, sep, value = setting.partition("=")
        if not sep:
            PARSER.error(f"-d expects NAME=VALUE, got {setting!r}")
        result[name.strip()] = value
    return result


def _context(arguments) -> RequestContext:
    return RequestContext.from_environ(
        environ,
        get={trigger: "" for trigger in arguments.triggers},
        session_name=arguments.session_name,
    )


def run(arguments):
    """Run a script or module under a ProfilerSession."""
    settings = settings_from_environ(environ)
    settings.update(parse_settings(arguments.settings))
    try:
        config = load_config(settings)
    except ValueError as e:
        PARSER.error(str(e))

    if not arguments.rest:
        PARSER.print_help()
        sys.exit(2)
    if arguments.rest[0] == "-m":
        # Not quite the same as what python -m does, but pretty close:
        if len(arguments.rest) == 1:
            PARSER.print_help()
            sys.exit(2)
        module = arguments.rest[1]
        # Like python -m, the current directory is importable:
        sys.path.insert(0, getcwd())
        sys.argv = [module] + arguments.rest[2:]
        script_name = module
        function = runpy.run_module
        func_args = (module,)
        func_kwargs = {"run_name": "__main__", "alter_sys": True}
    else:
        sys.argv = rest = arguments.rest
        script = rest[0]
        script_name = script
        # Make directory where script is importable:
        sys.path.insert(0, dirname(abspath(script)))
        function = runpy.run_path
        func_args = (script,)
        func_kwargs = {"run_name": "__main__"}

    if not config.enable:
        notice(
            f"Profiling is disabled; set {environ_name('enable')}=1 or pass "
            "-d enable=1 to enable it."
        )

    context = _context(arguments)
    context.server[SCRIPT_NAME] = script_name
    session = ProfilerSession(config, context)
    thread_pools = (
        nullcontext() if arguments.keep_thread_pools else disable_thread_pools()
    )
    trace_path = profile_path = False
    try:
        with thread_pools, session:
            trace_path = session.current_trace_filename()
            profile_path = session.current_profile_filename()
            function(*func_args, **func_kwargs)
    finally:
        if trace_path:
            notice("Wrote trace to " + trace_path)
        if profile_path:
            notice("Wrote profile to " + profile_path)


def filename(arguments):
    print(
        format_filename(
            arguments.dir, arguments.format, arguments.suffix, _context(arguments)
        )
    )


def summary(arguments):
    with open(arguments.path) as f:
        totals = parse_cachegrind_output(f)
    with open(arguments.path) as f:
        functions = parse_functions(f)
    for event, total in totals.items():
        print(f"{event}: {total}")
    ranked = sorted(functions.items(), key=lambda item: item[1], reverse=True)
    for (path, name), cost in ranked[: arguments.top]:
        print(f"{cost:>12} {name} ({path})")


COMMANDS = {"run": run, "filename": filename, "summary": summary}


def main():
    if len(sys.argv) == 1:
        PARSER.print_help()
        sys.exit(0)
    arguments = PARSER.parse_args()
    if not hasattr(arguments, "command"):
        PARSER.print_help()
        sys.exit(2)
    COMMANDS[arguments.command](arguments)


if __name__ == "__main__":
    main()
