"""Disk-based response caching for routecache.

This package provides the storage half of the cache:

* :class:`CacheStore` -- a TTL key/value store backed by :mod:`diskcache`.
* :func:`encode` -- canonical, SHA-256 based cache keys for
  :class:`~routecache.models.CacheDescriptor` objects.
* :class:`Janitor` -- on-demand, probabilistic or periodic expiration sweeps.

The store is consumed by :class:`~routecache.coordinator.CacheCoordinator`,
which decides *what* to cache using the policies in :mod:`routecache.routing`.
"""

from routecache.cache.janitor import Janitor, PeriodicSweep
from routecache.cache.keys import (
    api_descriptor,
    canonical_json,
    encode,
    endpoint_tag,
    route_descriptor,
    route_tag,
)
from routecache.cache.store import CacheStore, format_bytes

__all__ = [
    "CacheStore",
    "Janitor",
    "PeriodicSweep",
    "api_descriptor",
    "canonical_json",
    "encode",
    "endpoint_tag",
    "format_bytes",
    "route_descriptor",
    "route_tag",
]
