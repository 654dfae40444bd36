"""
Cachegrind/callgrind profile files.

Profiles are written in the text format KCachegrind and friends read, with a
single ``Time`` event measured in microseconds.
"""

from collections import defaultdict
from typing import Dict, IO, List, Tuple

from . import __version__

# (filename, function name, first line)
FunctionKey = Tuple[str, str, int]


class Profile:
    """Accumulated self and inclusive costs, per function and call site."""

    def __init__(self):
        self.self_cost: Dict[FunctionKey, int] = defaultdict(int)
        # caller -> callee -> [count, call line, inclusive cost]
        self.calls: Dict[FunctionKey, Dict[FunctionKey, List[int]]] = defaultdict(
            dict
        )

    def add_self_cost(self, function: FunctionKey, cost: int):
        self.self_cost[function] += cost

    def add_call(
        self, caller: FunctionKey, callee: FunctionKey, call_line: int, cost: int
    ):
        entry = self.calls[caller].setdefault(callee, [0, call_line, 0])
        entry[0] += 1
        entry[2] += cost

    def total(self) -> int:
        return sum(self.self_cost.values())

    def write(self, output: IO[str], command: str):
        output.write("version: 1\n")
        output.write(f"creator: xdprofile {__version__}\n")
        output.write(f"cmd: {command}\n")
        output.write("part: 1\n")
        output.write("positions: line\n\n")
        output.write("events: Time\n\n")
        functions = set(self.self_cost) | set(self.calls)
        for function in sorted(functions):
            filename, name, line = function
            output.write(f"fl={filename}\n")
            output.write(f"fn={name}\n")
            output.write(f"{line} {self.self_cost.get(function, 0)}\n")
            for callee, (count, call_line, cost) in sorted(
                self.calls.get(function, {}).items()
            ):
                output.write(f"cfl={callee[0]}\n")
                output.write(f"cfn={callee[1]}\n")
                output.write(f"calls={count} {callee[2]}\n")
                output.write(f"{call_line} {cost}\n")
            output.write("\n")
        output.write(f"summary: {self.total()}\n")


def write_profile(profile: Profile, path: str, append: bool, command: str):
    with open(path, "a" if append else "w") as f:
        profile.write(f, command)


def parse_cachegrind_output(temp_file) -> Dict[str, int]:
    """Return mapping from event name to its summary total."""
    lines = iter(temp_file)
    header = None
    for line in lines:
        if line.startswith("events: "):
            header = line[len("events: ") :].strip()
            break
    if header is None:
        raise ValueError("No events line found")
    last_line = ""
    for line in lines:
        if line.strip():
            last_line = line
    if not last_line.startswith("summary: "):
        raise ValueError("No summary line found")
    last_line = last_line[len("summary:") :].strip()
    return dict(zip(header.split(), [int(i) for i in last_line.split()]))


def parse_functions(temp_file) -> Dict[Tuple[str, str], int]:
    """Return mapping from (filename, function) to self cost."""
    result = {}
    filename = name = None
    expect_cost = False
    for line in temp_file:
        line = line.rstrip("\n")
        if line.startswith("fl="):
            filename = line[3:]
        elif line.startswith("fn="):
            name = line[3:]
            expect_cost = True
        elif expect_cost and line and line[0].isdigit():
            result[(filename, name)] = int(line.split()[1])
            expect_cost = False
    return result
