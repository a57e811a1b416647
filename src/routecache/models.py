"""Canonical Pydantic models shared across all routecache modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- serialised as JSON (or YAML) in the user's
config directory:
    :class:`CacheConfig`, :class:`RoutePolicy`, and :class:`Settings`.

**Cache records** -- produced and consumed by the cache layer:
    :class:`CacheDescriptor`, :class:`CacheEntry`, :class:`CacheStats`,
    and the :class:`Lookup` result tuple.

All models use Pydantic v2.  :class:`RoutePolicy` accepts the short option
names used by route tables (``ttl``, ``method``) as aliases so that policy
documents can be written either way.
"""

from __future__ import annotations

from typing import Any, NamedTuple, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


DEFAULT_TTL = 3600

DEFAULT_ENDPOINT_TTLS: dict[str, int] = {
    "posts": 1800,
    "pages": 7200,
    "media": 86400,
    "categories": 3600,
    "tags": 3600,
    "users": 7200,
    "comments": 900,
}


# --- Configuration ---


class CacheConfig(BaseModel):
    """Response cache settings stored in :class:`Settings`.

    ``endpoint_ttls`` overrides ``default_ttl`` for endpoint-style lookups
    (see :meth:`~routecache.coordinator.CacheCoordinator.lookup_endpoint`);
    route-style lookups take their TTL from the matching
    :class:`RoutePolicy` instead.
    """

    enabled: bool = Field(default=True, description="Enable response caching")
    directory: Optional[str] = Field(
        default=None,
        description="Cache root directory (defaults to the XDG cache dir)",
    )
    default_ttl: int = Field(default=DEFAULT_TTL, ge=0, description="Default TTL in seconds")
    endpoint_ttls: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_ENDPOINT_TTLS),
        description="Per-endpoint TTL overrides in seconds",
    )
    auto_cleanup: bool = Field(
        default=True, description="Sweep expired entries opportunistically after writes"
    )
    cleanup_probability: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Percent chance that a write triggers a sweep",
    )

    def endpoint_ttl(self, endpoint: str) -> int:
        """Return the TTL for *endpoint* (case-insensitive), falling back to ``default_ttl``."""
        return self.endpoint_ttls.get(endpoint.lower(), self.default_ttl)


class RoutePolicy(BaseModel):
    """Caching policy attached to a registered route pattern.

    Example::

        RoutePolicy(pattern="/api/posts/$id", ttl=3600)
        RoutePolicy(
            pattern="/api/user/profile",
            ttl_seconds=600,
            vary_by_headers=["Authorization"],
        )
    """

    model_config = ConfigDict(populate_by_name=True)

    pattern: str = Field(description="Route template with $name placeholders")
    ttl_seconds: int = Field(
        default=DEFAULT_TTL,
        ge=0,
        validation_alias=AliasChoices("ttl_seconds", "ttl"),
    )
    methods: list[str] = Field(
        default_factory=lambda: ["GET"],
        validation_alias=AliasChoices("methods", "method"),
    )
    vary_by_params: bool = True
    vary_by_headers: list[str] = Field(default_factory=list)
    cache_empty_responses: bool = False

    @field_validator("methods", mode="before")
    @classmethod
    def _normalise_methods(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = [value]
        return [str(m).upper() for m in value]

    @field_validator("vary_by_headers", mode="before")
    @classmethod
    def _listify_headers(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [value]
        return list(value or [])

    def allows(self, method: str) -> bool:
        """Return ``True`` if *method* (any case) is one of :attr:`methods`."""
        return method.upper() in self.methods


class Settings(BaseModel):
    """User-wide configuration persisted at ``~/.config/routecache/config.json``.

    Loaded and saved by :func:`~routecache.config.load_settings` and
    :func:`~routecache.config.save_settings`.  ``routes`` are registered in
    list order, which is also their match precedence.
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    routes: list[RoutePolicy] = Field(default_factory=list)


# --- Cache records ---


class CacheDescriptor(BaseModel):
    """The semantic identity of one cacheable operation.

    Two descriptors that differ only in the insertion order of their maps
    encode to the same key (see :func:`~routecache.cache.keys.encode`).
    """

    namespace: str = Field(description="Cache domain tag, e.g. 'api' or 'route'")
    route: str = Field(description="Endpoint name or registered route pattern")
    method: str = Field(default="", description="HTTP verb, empty for endpoint lookups")
    path_params: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)


class CacheEntry(BaseModel):
    """A stored record.

    ``expires_at`` is always ``created_at + ttl_seconds``; an entry whose
    ``expires_at`` is not in the future is treated as absent.  ``tag`` holds
    the store tag the entry was written with (``route:<pattern>`` or
    ``api:<endpoint>``), if any.
    """

    key: str
    payload: Any = None
    created_at: float
    expires_at: float
    ttl_seconds: int
    tag: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        """Return ``True`` if the entry is no longer valid at *now*."""
        return self.expires_at <= now


class CacheStats(BaseModel):
    """Snapshot returned by :meth:`~routecache.cache.store.CacheStore.stats`."""

    enabled: bool
    directory: Optional[str] = None
    default_ttl: int = DEFAULT_TTL
    total_entries: int = 0
    valid_entries: int = 0
    expired_entries: int = 0
    corrupt_entries: int = 0
    total_bytes: int = 0
    total_size_formatted: str = "0 B"
    cached_routes: Optional[int] = None


class Lookup(NamedTuple):
    """Result of a cache read: the payload and whether it was found."""

    payload: Any
    found: bool


MISS = Lookup(None, False)
