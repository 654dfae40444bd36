"""
Output filenames for traces and profiles.

Names are generated from a format string where ``%`` followed by a letter
expands to something about the current process or request:

    %c  crc32 of the current working directory
    %p  process id
    %r  random number, in hex
    %s  script name
    %t  timestamp, in seconds
    %u  timestamp, as seconds_microseconds
    %H  $_SERVER['HTTP_HOST']
    %R  $_SERVER['REQUEST_URI']
    %U  $_SERVER['UNIQUE_ID']
    %S  session id
    %%  a literal %

Anything else after a ``%`` is kept as-is, ``%`` included.
"""

import os
import random
import time
import zlib
from typing import Optional

from ._request import RequestContext, HTTP_HOST, REQUEST_URI, SCRIPT_NAME, UNIQUE_ID
from ._utils import seconds_and_micros

TRACE_SUFFIX = ".xt"

_SPECIAL_CHARS = str.maketrans({c: "_" for c in "/\\.?&+ "})

# Largest value rand() returns, matching the range of the original %r.
_RAND_MAX = 2 ** 31 - 1


def replace_special_chars(value: str) -> str:
    """Replace characters that don't belong in a filename with underscores."""
    return value.translate(_SPECIAL_CHARS)


def _cwd_checksum() -> int:
    return zlib.crc32(os.getcwd().encode("utf-8"))


def format_filename(
    directory: Optional[str],
    format_string: str,
    add_suffix: bool,
    context: RequestContext,
) -> str:
    """Expand ``format_string`` into a path, optionally inside ``directory``.

    Never fails: data that isn't available contributes nothing.
    """
    parts = []
    if directory is not None:
        parts.append(directory)
        parts.append("/")

    length = len(format_string)
    pos = 0
    while pos < length:
        c = format_string[pos]
        pos += 1
        if c != "%" or pos == length:
            parts.append(c)
            continue

        c = format_string[pos]
        pos += 1
        if c == "c":
            parts.append(str(_cwd_checksum()))
        elif c == "p":
            parts.append(str(os.getpid()))
        elif c == "r":
            parts.append("%x" % random.randint(0, _RAND_MAX))
        elif c == "s":
            parts.append(_sanitized(context.server_string(SCRIPT_NAME)))
        elif c == "t":
            parts.append(str(int(time.time())))
        elif c == "u":
            parts.append("%d_%d" % seconds_and_micros())
        elif c == "H":
            parts.append(_sanitized(context.server_string(HTTP_HOST)))
        elif c == "R":
            parts.append(_sanitized(context.server_string(REQUEST_URI)))
        elif c == "U":
            parts.append(_sanitized(context.server_string(UNIQUE_ID)))
        elif c == "S":
            # No session name configured: expands to nothing.
            if context.session_name is not None:
                parts.append(_sanitized(context.session_id()))
        elif c == "%":
            parts.append("%")
        else:
            parts.append("%")
            parts.append(c)

    if add_suffix:
        parts.append(TRACE_SUFFIX)
    return "".join(parts)


def _sanitized(value: Optional[str]) -> str:
    if value is None:
        return ""
    return replace_special_chars(value)
