"""Exception hierarchy for routecache.

All exceptions inherit from :class:`RouteCacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`routecache.exit_codes`.

Only :class:`StorageUnavailableError` is meant to reach the caller's primary
code path: it is raised while constructing a store, before any request is
served.  Write failures are raised by :class:`~routecache.cache.store.CacheStore`
and swallowed by :class:`~routecache.coordinator.CacheCoordinator`, and
corrupt records never leave the store at all.

Subclass hierarchy::

    RouteCacheError (exit 1)
    +-- StorageUnavailableError (exit 1)
    +-- CacheWriteError         (exit 1)
    +-- CorruptRecordError      (exit 1)
    +-- ConfigError             (exit 1)
    +-- InvalidPatternError     (exit 2)
"""

from routecache.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INVALID_USAGE


class RouteCacheError(Exception):
    """Base exception for all routecache errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`routecache.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class StorageUnavailableError(RouteCacheError):
    """Raised when the cache directory is missing, unwritable, or cannot be opened."""

    exit_code = EXIT_GENERIC_FAILURE


class CacheWriteError(RouteCacheError):
    """Raised when an entry cannot be serialised or written (disk full, permissions)."""

    exit_code = EXIT_GENERIC_FAILURE


class CorruptRecordError(RouteCacheError):
    """Raised internally when a stored record cannot be decoded.

    Args:
        key: The physical key whose record is unreadable.
        reason: Short description of the decoding failure.
    """

    exit_code = EXIT_GENERIC_FAILURE

    def __init__(self, key: str, reason: str):
        super().__init__(f"Corrupt cache record {key!r}: {reason}")
        self.key = key


class ConfigError(RouteCacheError):
    """Raised for configuration problems (invalid JSON/YAML, bad policy documents)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidPatternError(RouteCacheError):
    """Raised when a route pattern is malformed (no leading ``/``, empty capture name)."""

    exit_code = EXIT_INVALID_USAGE
