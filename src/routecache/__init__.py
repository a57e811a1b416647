"""routecache -- TTL response caching for routed requests and upstream API calls.

The package caches the output of expensive handlers on disk.  A
:class:`~routecache.routing.CachePolicyRegistry` decides which routes are
cacheable and for how long, keys are derived deterministically from the
request (route pattern, method, path parameters, and optionally query
parameters and selected headers), and entries expire lazily.

Typical use::

    from routecache import CacheCoordinator, CachePolicyRegistry, CacheStore

    registry = CachePolicyRegistry()
    registry.register("/api/posts/$id", ttl=3600)
    coordinator = CacheCoordinator(CacheStore("/var/cache/app"), registry)

    body, hit = coordinator.execute("/api/posts/42", "GET", render_post)

Modules:
    cache: Disk-backed store, key derivation, and expiration sweeps.
    routing: Route patterns and the policy registry.
    coordinator: The façade used by request handlers and API clients.
    models: Pydantic models shared across the package.
    config: XDG-aware settings and environment overrides.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr reporting with Rich support.
"""

from routecache.cache import CacheStore, Janitor
from routecache.coordinator import CacheCoordinator
from routecache.models import CacheConfig, CacheDescriptor, CacheEntry, CacheStats, Lookup, RoutePolicy
from routecache.routing import CachePolicyRegistry

__version__ = "0.1.0"

__all__ = [
    "CacheConfig",
    "CacheCoordinator",
    "CacheDescriptor",
    "CacheEntry",
    "CachePolicyRegistry",
    "CacheStats",
    "CacheStore",
    "Janitor",
    "Lookup",
    "RoutePolicy",
]
