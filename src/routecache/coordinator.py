"""The façade collaborators use to cache expensive work.

:class:`CacheCoordinator` ties the pieces together::

    request ──> CachePolicyRegistry.policy_for(path, method)
                  │ no policy: not cacheable, store untouched
                  ▼
                extract(pattern, path) + vary-by query/headers
                  ▼
                keys.encode(descriptor) ──> CacheStore.get / set

Caching is strictly best-effort.  Apart from
:class:`~routecache.exceptions.StorageUnavailableError` at construction
time, no cache failure reaches the caller: a failed write is reported as a
warning and the caller's own result is returned unchanged.

Two descriptor shapes are supported:

* **Route style** (:meth:`CacheCoordinator.lookup`, :meth:`~CacheCoordinator.store`,
  :meth:`~CacheCoordinator.execute`) for requests handled by a router.
* **Endpoint style** (:meth:`CacheCoordinator.lookup_endpoint`,
  :meth:`~CacheCoordinator.store_endpoint`) for upstream API clients keyed
  by endpoint name, target id and request parameters.

Coordinators are constructed explicitly and passed to collaborators; there
is no module-level instance.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from routecache.cache.janitor import Janitor
from routecache.cache.keys import api_descriptor, encode, endpoint_tag, route_descriptor, route_tag
from routecache.cache.store import STORAGE_ERRORS, CacheStore
from routecache.exceptions import CacheWriteError
from routecache.models import (
    MISS,
    CacheConfig,
    CacheDescriptor,
    CacheStats,
    Lookup,
    RoutePolicy,
    Settings,
)
from routecache.output import debug, warning
from routecache.routing.patterns import extract
from routecache.routing.registry import CachePolicyRegistry


class CacheCoordinator:
    """Decides cacheability, derives keys, and reads/writes through a store.

    Args:
        store: The backing :class:`~routecache.cache.store.CacheStore`.
        registry: Route policies; an empty registry makes every route
            uncacheable.
        config: Cache configuration (endpoint TTLs, auto-cleanup).  Defaults
            to a fresh :class:`~routecache.models.CacheConfig`.
        janitor: Sweeper used for probabilistic cleanup after writes.

    Example::

        store = CacheStore(tmp_dir)
        registry = CachePolicyRegistry()
        registry.register("/api/posts/$id", ttl=3600)
        coordinator = CacheCoordinator(store, registry)

        payload, hit = coordinator.execute("/api/posts/42", "GET", load_post)
    """

    def __init__(
        self,
        store: CacheStore,
        registry: Optional[CachePolicyRegistry] = None,
        config: Optional[CacheConfig] = None,
        janitor: Optional[Janitor] = None,
    ) -> None:
        self._store = store
        self._registry = registry if registry is not None else CachePolicyRegistry()
        self._config = config or CacheConfig()
        self._janitor = janitor or Janitor(store)

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        registry: Optional[CachePolicyRegistry] = None,
    ) -> CacheCoordinator:
        """Build a store and coordinator from a :class:`~routecache.models.CacheConfig`.

        Raises:
            StorageUnavailableError: If the cache directory is unusable.
        """
        from routecache.config import resolve_cache_dir

        store = CacheStore(resolve_cache_dir(config), config)
        return cls(store, registry, config)

    @classmethod
    def from_settings(cls, settings: Settings) -> CacheCoordinator:
        """Build a coordinator from persisted :class:`~routecache.models.Settings`.

        ``settings.routes`` become the registry, in list order, and
        ``ROUTECACHE_*`` environment overrides apply to ``settings.cache``.

        Raises:
            StorageUnavailableError: If the cache directory is unusable.
        """
        from routecache.config import resolve_cache_config

        registry = CachePolicyRegistry(settings.routes)
        return cls.from_config(resolve_cache_config(settings), registry)

    @property
    def cache_store(self) -> CacheStore:
        return self._store

    @property
    def registry(self) -> CachePolicyRegistry:
        return self._registry

    @property
    def janitor(self) -> Janitor:
        return self._janitor

    @property
    def enabled(self) -> bool:
        return self._config.enabled and self._store.enabled

    # ------------------------------------------------------------------ #
    # Route-style caching
    # ------------------------------------------------------------------ #

    def lookup(
        self,
        path: str,
        method: str,
        query_params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Lookup:
        """Return the cached payload for a request, if any.

        Uncacheable requests return a miss without touching the store.
        """
        policy, matched = self._resolve(path, method)
        if not matched:
            return MISS
        descriptor = self.describe(policy, path, method, query_params, headers)
        result = self._store.get(encode(descriptor))
        debug(f"Cache {'hit' if result.found else 'miss'}: {method.upper()} {path}")
        return result

    def store(
        self,
        path: str,
        method: str,
        query_params: Optional[Mapping[str, Any]],
        headers: Optional[Mapping[str, str]],
        payload: Any,
    ) -> bool:
        """Cache *payload* for a request.

        Empty payloads are skipped unless the policy sets
        ``cache_empty_responses``.  Write failures are logged, never raised.

        Returns:
            ``True`` if the payload was written.
        """
        policy, matched = self._resolve(path, method)
        if not matched:
            return False
        assert policy is not None
        if _is_empty(payload) and not policy.cache_empty_responses:
            debug(f"Skipping empty response for {method.upper()} {path}")
            return False

        descriptor = self.describe(policy, path, method, query_params, headers)
        key = encode(descriptor)
        return self._write(key, payload, policy.ttl_seconds, tag=route_tag(policy.pattern))

    def execute(
        self,
        path: str,
        method: str,
        handler: Callable[..., Any],
        query_params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> tuple[Any, bool]:
        """Serve a request from cache or run *handler* and cache its result.

        On a miss *handler* is called with the extracted path parameters as
        keyword arguments (none for uncacheable routes) and a non-``None``
        result is stored.

        Returns:
            ``(result, hit)`` where *hit* tells whether the result came from
            the cache.
        """
        payload, found = self.lookup(path, method, query_params, headers)
        if found:
            return payload, True

        policy, matched = self._resolve(path, method)
        params = extract(policy.pattern, path) if matched and policy is not None else {}
        result = handler(**params)
        if result is not None:
            self.store(path, method, query_params, headers, result)
        return result, False

    def describe(
        self,
        policy: RoutePolicy,
        path: str,
        method: str,
        query_params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> CacheDescriptor:
        """Build the route-style descriptor for a request under *policy*.

        Query parameters count only when ``vary_by_params`` is set; headers
        only when named in ``vary_by_headers`` (matched case-insensitively,
        absent headers skipped).
        """
        query = dict(query_params or {}) if policy.vary_by_params else {}
        return route_descriptor(
            policy.pattern,
            method,
            path_params=extract(policy.pattern, path),
            query_params=query,
            headers=_select_headers(policy.vary_by_headers, headers),
        )

    # ------------------------------------------------------------------ #
    # Endpoint-style caching
    # ------------------------------------------------------------------ #

    def lookup_endpoint(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        target: Optional[str] = None,
    ) -> Lookup:
        """Return the cached upstream response for *endpoint*, if any."""
        if not self.enabled:
            return MISS
        result = self._store.get(encode(api_descriptor(endpoint, params, target)))
        debug(f"Cache {'hit' if result.found else 'miss'}: endpoint {endpoint}")
        return result

    def store_endpoint(
        self,
        endpoint: str,
        payload: Any,
        params: Optional[Mapping[str, Any]] = None,
        target: Optional[str] = None,
    ) -> bool:
        """Cache an upstream response using the endpoint's configured TTL."""
        if not self.enabled:
            return False
        key = encode(api_descriptor(endpoint, params, target))
        ttl = self._config.endpoint_ttl(endpoint)
        return self._write(key, payload, ttl, tag=endpoint_tag(endpoint))

    # ------------------------------------------------------------------ #
    # Management
    # ------------------------------------------------------------------ #

    def invalidate(self, pattern: str) -> int:
        """Drop every entry stored under route *pattern*, then sweep expired entries.

        Entries are tagged with their route pattern when written, so removal
        is exact for entries created by this package.  Endpoint entries are
        never touched, even for an endpoint named like the pattern.

        Returns:
            The number of entries removed for *pattern*.
        """
        return self._evict(route_tag(pattern), pattern)

    def invalidate_endpoint(self, endpoint: str) -> int:
        """Drop every cached upstream response for *endpoint*, then sweep.

        Returns:
            The number of entries removed for *endpoint*.
        """
        return self._evict(endpoint_tag(endpoint), endpoint)

    def clear_all(self) -> bool:
        """Remove every entry.  Returns ``False`` if the store could not be cleared."""
        if not self._store.enabled:
            return True
        try:
            self._store.clear()
        except CacheWriteError as exc:
            warning(str(exc))
            return False
        return True

    def sweep(self) -> int:
        """Remove expired entries now and return how many were removed."""
        return self._janitor.sweep()

    def stats(self) -> CacheStats:
        """Return store statistics plus the number of registered routes."""
        stats = self._store.stats()
        if not stats.enabled:
            return stats
        return stats.model_copy(update={"cached_routes": len(self._registry)})

    def close(self) -> None:
        self._store.close()

    def __enter__(self) -> CacheCoordinator:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _resolve(self, path: str, method: str) -> tuple[Optional[RoutePolicy], bool]:
        if not self.enabled:
            return None, False
        return self._registry.policy_for(path, method)

    def _write(self, key: str, payload: Any, ttl: int, tag: Optional[str]) -> bool:
        try:
            written = self._store.set(key, payload, ttl, tag=tag)
        except CacheWriteError as exc:
            warning(f"Response not cached: {exc}")
            return False
        if written and self._config.auto_cleanup:
            try:
                self._janitor.maybe_sweep(self._config.cleanup_probability)
            except STORAGE_ERRORS as exc:
                warning(f"Cache sweep after write failed: {exc}")
        return written

    def _evict(self, tag: str, label: str) -> int:
        if not self._store.enabled:
            return 0
        try:
            removed = self._store.evict(tag)
        except CacheWriteError as exc:
            warning(f"Cache invalidation for {label} failed: {exc}")
            removed = 0
        try:
            self._janitor.sweep()
        except STORAGE_ERRORS as exc:
            warning(f"Cache sweep after invalidating {label} failed: {exc}")
        return removed


def _select_headers(
    names: list[str],
    headers: Optional[Mapping[str, str]],
) -> dict[str, str]:
    """Pick the allow-listed *names* out of *headers*, ignoring case."""
    if not names or not headers:
        return {}
    lowered = {k.lower(): v for k, v in headers.items()}
    selected: dict[str, str] = {}
    for name in names:
        value = lowered.get(name.lower())
        if value is not None:
            selected[name] = value
    return selected


def _is_empty(payload: Any) -> bool:
    """Return ``True`` for ``None`` and empty strings, bytes, and containers.

    Falsy scalars (``0``, ``0.0``, ``False``) and the string ``"0"`` are
    real responses and are cached.
    """
    if payload is None:
        return True
    if isinstance(payload, (str, bytes, list, tuple, dict, set)):
        return len(payload) == 0
    return False
