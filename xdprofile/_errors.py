"""Exceptions and warnings raised by xdprofile."""


class XDProfileError(RuntimeError):
    """Base class for fatal xdprofile errors."""


class ResourceConflict(XDProfileError):
    """Another profiler is already attached to this thread."""


class UnsupportedOption(XDProfileError):
    """An option bit was passed that this implementation does not support."""


class NestedCoverageWarning(UserWarning):
    """Coverage was started while another trace function was installed."""
