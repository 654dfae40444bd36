"""Utilities."""

from datetime import datetime
import sys
import time
from typing import Tuple

PREFIX = "=xdprofile= "


def notice(message: str):
    """Write a diagnostic line to stderr."""
    print(PREFIX + message, file=sys.stderr)


def timestamp_now() -> str:
    """Return current time as a string suitable for trace headers."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def current_time_micros() -> int:
    """Wall-clock time in microseconds since the epoch."""
    return time.time_ns() // 1000


def seconds_and_micros() -> Tuple[int, int]:
    """Wall-clock time split into whole seconds and the microsecond remainder."""
    return divmod(current_time_micros(), 1000000)
