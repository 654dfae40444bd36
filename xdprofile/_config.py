"""
Process-wide configuration.

Every option is listed once in ``OPTIONS``; ``Config`` gets one attribute per
option, with dots replaced by underscores (``trace.output_dir`` becomes
``config.trace_output_dir``).

Options are fixed once loaded, except for ``collect_memory`` and
``collect_time``, which can be changed while requests run via
``Config.set_option()``.
"""

import threading
from typing import Any, Callable, Dict, Mapping, NamedTuple

from ._request import RequestContext


class Option(NamedTuple):
    name: str
    type: type
    default: Any


OPTIONS = (
    Option("enable", bool, False),
    Option("trace.auto", bool, False),
    Option("trace.enable_trigger", bool, False),
    Option("trace.trigger", str, "XDEBUG_TRACE"),
    Option("trace.output_dir", str, "/tmp"),
    Option("trace.output_name", str, "trace.%c"),
    Option("trace.format", int, 0),
    Option("trace.append", bool, False),
    Option("profiler.enable", bool, False),
    Option("profiler.enable_trigger", bool, False),
    Option("profiler.trigger", str, "XDEBUG_PROFILE"),
    Option("profiler.output_dir", str, "/tmp"),
    Option("profiler.output_name", str, "cachegrind.out.%p"),
    Option("profiler.append", bool, False),
    Option("collect_memory", bool, False),
    Option("collect_time", bool, False),
    # Names of variables to capture; stored but not interpreted.
    Option("dump.COOKIE", str, ""),
    Option("dump.FILES", str, ""),
    Option("dump.GET", str, ""),
    Option("dump.POST", str, ""),
    Option("dump.REQUEST", str, ""),
    Option("dump.SERVER", str, ""),
    Option("dump.SESSION", str, ""),
)

OPTIONS_BY_NAME = {option.name: option for option in OPTIONS}
OPTIONS_BY_ATTRIBUTE = {
    option.name.replace(".", "_"): option for option in OPTIONS
}

RUNTIME_OPTIONS = ("collect_memory", "collect_time")

TRACE_FORMATS = (0, 1, 2)

ENVIRON_PREFIX = "XDPROFILE_"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def attribute_name(name: str) -> str:
    return name.replace(".", "_")


def coerce(option: Option, value: Any) -> Any:
    """Convert a raw setting to the option's type."""
    if option.type is bool:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(f"{option.name}: {value!r} is not a boolean")
        return bool(value)
    if option.type is int:
        result = int(value)
        if option.name == "trace.format" and result not in TRACE_FORMATS:
            raise ValueError(f"trace.format must be one of {TRACE_FORMATS}")
        return result
    return str(value)


class Config:
    """Settings for xdprofile."""

    def __init__(self, **values):
        for option in OPTIONS:
            setattr(self, attribute_name(option.name), option.default)
        for attribute, value in values.items():
            option = OPTIONS_BY_ATTRIBUTE[attribute]
            setattr(self, attribute, coerce(option, value))
        # callback(name, value) per thread with an attached session.
        self._collection_listeners: Dict[int, Callable[[str, bool], None]] = {}
        self._listeners_lock = threading.Lock()

    def get(self, name: str) -> Any:
        """Look up an option by its dotted name."""
        if name not in OPTIONS_BY_NAME:
            raise KeyError(name)
        return getattr(self, attribute_name(name))

    def set_option(self, name: str, value: Any):
        """Change a runtime-mutable option, and notify attached sessions."""
        if name not in RUNTIME_OPTIONS:
            raise ValueError(f"{name} can't be changed at runtime")
        value = coerce(OPTIONS_BY_NAME[name], value)
        setattr(self, attribute_name(name), value)
        with self._listeners_lock:
            listeners = list(self._collection_listeners.values())
        for listener in listeners:
            listener(name, value)

    def add_collection_listener(
        self, thread_id: int, callback: Callable[[str, bool], None]
    ):
        """Call ``callback(name, value)`` on runtime collection changes.

        One listener per thread: the session attached on ``thread_id``.
        """
        with self._listeners_lock:
            self._collection_listeners[thread_id] = callback

    def remove_collection_listener(
        self, thread_id: int, callback: Callable[[str, bool], None]
    ):
        with self._listeners_lock:
            if self._collection_listeners.get(thread_id) == callback:
                del self._collection_listeners[thread_id]

    @property
    def collection_listeners(self) -> Dict[int, Callable[[str, bool], None]]:
        with self._listeners_lock:
            return dict(self._collection_listeners)

    def is_tracing_needed(self, context: RequestContext) -> bool:
        return self.trace_auto or (
            self.trace_enable_trigger and context.is_trigger_set(self.trace_trigger)
        )

    def is_profiling_needed(self, context: RequestContext) -> bool:
        return self.profiler_enable or (
            self.profiler_enable_trigger
            and context.is_trigger_set(self.profiler_trigger)
        )

    def is_profiler_needed(self, context: RequestContext) -> bool:
        """Whether a request needs a profiler attached at all."""
        return (
            self.is_profiling_needed(context)
            or self.is_tracing_needed(context)
            or self.collect_memory
            or self.collect_time
        )


def load_config(settings: Mapping[str, Any]) -> Config:
    """Create a Config from dotted option names.

    If ``enable`` is off, nothing else is read.
    """
    unknown = set(settings) - set(OPTIONS_BY_NAME)
    if unknown:
        raise ValueError("Unknown option(s): " + ", ".join(sorted(unknown)))
    config = Config()
    config.enable = coerce(OPTIONS_BY_NAME["enable"], settings.get("enable", False))
    if not config.enable:
        return config
    for name, value in settings.items():
        setattr(config, attribute_name(name), coerce(OPTIONS_BY_NAME[name], value))
    return config


def environ_name(name: str) -> str:
    """The environment variable for an option, e.g. XDPROFILE_TRACE__AUTO."""
    return ENVIRON_PREFIX + name.replace(".", "__").upper()


def settings_from_environ(environ: Mapping[str, str]) -> dict:
    """Extract option settings from XDPROFILE_* environment variables."""
    by_variable = {environ_name(option.name): option.name for option in OPTIONS}
    return {
        by_variable[key]: value
        for key, value in environ.items()
        if key in by_variable
    }


def load_config_from_environ(environ: Mapping[str, str]) -> Config:
    return load_config(settings_from_environ(environ))
