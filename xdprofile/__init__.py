"""xdprofile: request-scoped tracing and profiling, xdebug style."""

__all__ = ["__version__"]

try:
    from importlib.metadata import version, PackageNotFoundError

    try:
        __version__ = version(__name__)
    except PackageNotFoundError:
        # package is not installed
        __version__ = "unknown"
    del version, PackageNotFoundError
except ImportError:
    __version__ = "unknown"
