"""Deterministic cache-key derivation.

A :class:`~routecache.models.CacheDescriptor` is reduced to the ordered
tuple ``(namespace, route, METHOD, path_params, query_params, headers)``,
serialised as canonical JSON (sorted keys, compact separators, ASCII only)
and hashed with SHA-256.  The hex digest is prefixed with the namespace::

    route_3f1c...e9   # route-style descriptor
    api_a04b...12     # endpoint-style descriptor

Identical descriptors always resolve to the same key regardless of map
insertion order; nested maps, lists and sets are normalised the same way.
Map keys must be strings at every depth, so ``{1: "a"}`` and ``{"1": "a"}``
can never share a key.

Entries are also written with a namespaced *tag* (``route:<pattern>`` or
``api:<endpoint>``) so that one route or endpoint can be evicted without
touching the other namespace.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping, Optional

from routecache.models import CacheDescriptor

API_NAMESPACE = "api"
ROUTE_NAMESPACE = "route"


def encode(descriptor: CacheDescriptor) -> str:
    """Return the canonical cache key for *descriptor*.

    Args:
        descriptor: The operation to key.

    Returns:
        ``"<namespace>_<sha256 hex>"``.

    Example::

        >>> a = CacheDescriptor(namespace="api", route="posts", query_params={"page": 1, "per_page": 10})
        >>> b = CacheDescriptor(namespace="api", route="posts", query_params={"per_page": 10, "page": 1})
        >>> encode(a) == encode(b)
        True
    """
    parts = [
        descriptor.namespace,
        descriptor.route,
        descriptor.method.upper(),
        _canonicalize(descriptor.path_params),
        _canonicalize(descriptor.query_params),
        _canonicalize(descriptor.headers),
    ]
    digest = hashlib.sha256(canonical_json(parts).encode("utf-8")).hexdigest()
    return f"{descriptor.namespace}_{digest}"


def canonical_json(value: Any) -> str:
    """Serialise *value* to a stable JSON string.

    Map keys are sorted at every depth and sets are emitted as sorted lists,
    so equal values always produce byte-identical output.

    Raises:
        TypeError: If any map key is not a string.
    """
    return json.dumps(
        _canonicalize(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


def route_tag(pattern: str) -> str:
    """Return the store tag for entries cached under route *pattern*."""
    return f"{ROUTE_NAMESPACE}:{pattern}"


def endpoint_tag(endpoint: str) -> str:
    """Return the store tag for entries cached for upstream *endpoint*."""
    return f"{API_NAMESPACE}:{endpoint}"


def api_descriptor(
    endpoint: str,
    params: Optional[Mapping[str, Any]] = None,
    target: Optional[str] = None,
) -> CacheDescriptor:
    """Build the endpoint-style descriptor used by upstream API clients.

    The descriptor is method-agnostic; *target* (an id or slug) becomes the
    single ``target`` path parameter when given.
    """
    path_params = {"target": str(target)} if target is not None else {}
    return CacheDescriptor(
        namespace=API_NAMESPACE,
        route=endpoint,
        method="",
        path_params=path_params,
        query_params=dict(params or {}),
    )


def route_descriptor(
    pattern: str,
    method: str,
    path_params: Optional[Mapping[str, str]] = None,
    query_params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> CacheDescriptor:
    """Build the route-style descriptor for a request matched against *pattern*."""
    return CacheDescriptor(
        namespace=ROUTE_NAMESPACE,
        route=pattern,
        method=method.upper(),
        path_params=dict(path_params or {}),
        query_params=dict(query_params or {}),
        headers=dict(headers or {}),
    )


def _canonicalize(value: Any) -> Any:
    """Recursively convert *value* into JSON-ready, order-independent data."""
    if isinstance(value, Mapping):
        for k in value:
            if not isinstance(k, str):
                raise TypeError(f"Map keys must be strings, got {type(k).__name__} {k!r}")
        return {k: _canonicalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonicalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        items = [_canonicalize(v) for v in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True, default=str))
    return value
