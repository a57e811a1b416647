"""Numeric process exit codes for tools that wrap the cache.

Each constant maps to an error category and is referenced by the
corresponding :class:`~routecache.exceptions.RouteCacheError` subclass.
A management script built on :class:`~routecache.coordinator.CacheCoordinator`
can exit with ``exc.exit_code`` so that shell wrappers and cron jobs can
tell success from failure without parsing stderr.

Example::

    $ cache-maintenance sweep
    $ echo $?
    1   # EXIT_GENERIC_FAILURE -- the sweep could not open the cache
"""

EXIT_SUCCESS = 0
"""The operation completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""Any cache operation failed (storage unavailable, write failure, bad config)."""

EXIT_INVALID_USAGE = 2
"""The caller supplied an invalid argument, such as a malformed route pattern."""
