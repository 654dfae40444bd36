"""
Trace file writers.

A trace is written in one of three formats: a human-readable indented listing,
a tab-separated "computerized" format meant for tools, or an HTML table.
"""

from html import escape
from typing import IO, Optional

from . import __version__
from ._utils import timestamp_now

NORMAL = 0
COMPUTERIZED = 1
HTML = 2

# Version of the computerized format's record layout.
COMPUTERIZED_FILE_FORMAT = 4


class TraceWriter:
    """Writes trace records to an open file.

    ``time_index`` is seconds since the request started and ``memory`` is in
    bytes; either is None when it isn't being collected.
    """

    def __init__(self, output: IO[str]):
        self.output = output

    def start(self):
        pass

    def enter(
        self,
        level: int,
        function_number: int,
        time_index: Optional[float],
        memory: Optional[int],
        function: str,
        filename: str,
        lineno: int,
    ):
        raise NotImplementedError()

    def exit(
        self,
        level: int,
        function_number: int,
        time_index: Optional[float],
        memory: Optional[int],
    ):
        pass

    def finish(self, time_index: Optional[float], memory: Optional[int]):
        pass

    def close(self):
        self.output.close()


class NormalTraceWriter(TraceWriter):
    """Indented, human-readable trace."""

    def start(self):
        self.output.write(f"TRACE START [{timestamp_now()}]\n")

    def _columns(self, time_index, memory) -> str:
        result = ""
        if time_index is not None:
            result += "%10.4f " % time_index
        if memory is not None:
            result += "%10d " % memory
        return result

    def enter(
        self, level, function_number, time_index, memory, function, filename, lineno
    ):
        self.output.write(
            "%s%s-> %s() %s:%d\n"
            % (
                self._columns(time_index, memory),
                "  " * level,
                function,
                filename,
                lineno,
            )
        )

    def finish(self, time_index, memory):
        columns = self._columns(time_index, memory)
        if columns:
            self.output.write(columns + "\n")
        self.output.write(f"TRACE END   [{timestamp_now()}]\n\n")


def _field(value, format_string: str) -> str:
    if value is None:
        return ""
    return format_string % value


class ComputerizedTraceWriter(TraceWriter):
    """Tab-separated trace records, one per line."""

    def start(self):
        self.output.write(f"Version: {__version__}\n")
        self.output.write(f"File format: {COMPUTERIZED_FILE_FORMAT}\n")
        self.output.write(f"TRACE START [{timestamp_now()}]\n")

    def enter(
        self, level, function_number, time_index, memory, function, filename, lineno
    ):
        self.output.write(
            "\t".join(
                [
                    str(level),
                    str(function_number),
                    "0",
                    _field(time_index, "%f"),
                    _field(memory, "%d"),
                    function,
                    "1",
                    "",
                    filename,
                    str(lineno),
                ]
            )
            + "\n"
        )

    def exit(self, level, function_number, time_index, memory):
        self.output.write(
            "\t".join(
                [
                    str(level),
                    str(function_number),
                    "1",
                    _field(time_index, "%f"),
                    _field(memory, "%d"),
                ]
            )
            + "\n"
        )

    def finish(self, time_index, memory):
        self.output.write(
            "\t\t\t%s\t%s\n" % (_field(time_index, "%f"), _field(memory, "%d"))
        )
        self.output.write(f"TRACE END   [{timestamp_now()}]\n\n")


class HTMLTraceWriter(TraceWriter):
    """Trace as an HTML table."""

    def start(self):
        self.output.write(
            "<table class='xdebug-trace' dir='ltr' border='1' cellspacing='0'>\n"
            "\t<tr><th>#</th><th>Time</th><th>Mem</th>"
            "<th colspan='2'>Function</th><th>Location</th></tr>\n"
        )

    def enter(
        self, level, function_number, time_index, memory, function, filename, lineno
    ):
        self.output.write(
            "\t<tr><td>{number}</td><td>{time}</td><td align='right'>{memory}</td>"
            "<td align='left'>{indent}-&gt;</td><td>{function}()</td>"
            "<td>{filename}:{lineno}</td></tr>\n".format(
                number=function_number,
                time=_field(time_index, "%.6f"),
                memory=_field(memory, "%d"),
                indent="&nbsp; &nbsp;" * level,
                function=escape(function),
                filename=escape(filename),
                lineno=lineno,
            )
        )

    def finish(self, time_index, memory):
        self.output.write("</table>\n")


WRITERS = {
    NORMAL: NormalTraceWriter,
    COMPUTERIZED: ComputerizedTraceWriter,
    HTML: HTMLTraceWriter,
}


def open_trace_writer(path: str, trace_format: int, append: bool) -> TraceWriter:
    """Open ``path`` and return a writer for the given format."""
    output = open(path, "a" if append else "w")
    return WRITERS[trace_format](output)
