"""
Call stack lookups.

All functions take the frame of the *callee*, i.e. the function that wants to
know who called it, and look one frame further out.
"""

from types import FrameType
from typing import List, Optional, Union

MODULE_CODE = "<module>"
MAIN_FUNCTION = "{main}"


def get_call_frame(callee: FrameType) -> Optional[FrameType]:
    """Return the callee's caller, or None if the callee is module-level code."""
    if callee.f_code.co_name == MODULE_CODE:
        return None
    return callee.f_back


def call_class(callee: FrameType) -> Union[str, bool]:
    """Name of the caller's class; "" if it's not a method, False at top level."""
    caller = get_call_frame(callee)
    if caller is None:
        return False
    qualname = getattr(caller.f_code, "co_qualname", None)
    if qualname is not None:
        parts = [p for p in qualname.split(".")[:-1] if p != "<locals>"]
        return parts[-1] if parts else ""
    # Older Pythons: guess from the conventional first argument.
    if "self" in caller.f_locals:
        return type(caller.f_locals["self"]).__name__
    if "cls" in caller.f_locals and isinstance(caller.f_locals["cls"], type):
        return caller.f_locals["cls"].__name__
    return ""


def call_function(callee: FrameType) -> Union[str, bool]:
    """Name of the caller; "{main}" for module code, False at top level."""
    caller = get_call_frame(callee)
    if caller is None:
        return False
    if caller.f_code.co_name == MODULE_CODE:
        return MAIN_FUNCTION
    return caller.f_code.co_name


def call_file(callee: FrameType) -> str:
    """File of the caller, or of the callee itself at top level."""
    caller = get_call_frame(callee)
    if caller is None:
        caller = callee
    return caller.f_code.co_filename


def call_line(callee: FrameType) -> int:
    """Line the caller is currently at, 0 if unknown."""
    caller = get_call_frame(callee)
    if caller is None or caller.f_lineno is None:
        return 0
    return caller.f_lineno


def declared_vars(callee: FrameType) -> List[str]:
    """Names of all local variables of the callee, assigned yet or not."""
    code = callee.f_code
    return list(code.co_varnames) + [
        name for name in code.co_cellvars if name not in code.co_varnames
    ]


def stack_depth(frame: Optional[FrameType]) -> int:
    """Number of frames from ``frame`` to the bottom of the stack."""
    depth = 0
    while frame is not None:
        depth += 1
        frame = frame.f_back
    return depth
