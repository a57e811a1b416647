"""Ordered registry of route caching policies.

Policies are kept in registration order and resolved by first match: the
first registered pattern that matches the request path *and* allows the
request method wins.  Overlapping patterns are never merged or ranked by
specificity, so register specific patterns before general ones::

    registry = CachePolicyRegistry()
    registry.register("/api/posts/featured", ttl=300)
    registry.register("/api/posts/$id", ttl=3600)

A path that matches no policy is simply not cacheable.

Registries can also be built from a policy document (JSON or YAML)::

    routes:
      - pattern: /api/search
        ttl: 900
      - pattern: /api/user/profile
        ttl: 600
        vary_by_headers: [Authorization]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from pydantic import ValidationError

from routecache.exceptions import ConfigError
from routecache.models import RoutePolicy
from routecache.routing.patterns import compile_pattern


class CachePolicyRegistry:
    """Maps route patterns to :class:`~routecache.models.RoutePolicy` objects.

    Args:
        policies: Initial policies, registered in iteration order.
    """

    def __init__(self, policies: Iterable[RoutePolicy] = ()) -> None:
        self._policies: dict[str, RoutePolicy] = {}
        for policy in policies:
            self.register(policy.pattern, policy)

    def register(
        self,
        pattern: str,
        policy: Optional[RoutePolicy] = None,
        **options: Any,
    ) -> RoutePolicy:
        """Register *pattern* as cacheable.

        Either pass a ready :class:`RoutePolicy` or keyword options
        (``ttl``/``ttl_seconds``, ``methods``, ``vary_by_params``,
        ``vary_by_headers``, ``cache_empty_responses``); unspecified options
        take their defaults.  Registering a pattern again replaces its policy
        but keeps its original precedence.

        Returns:
            The stored policy.

        Raises:
            InvalidPatternError: If *pattern* is malformed.
            ConfigError: If the options fail validation.
        """
        compile_pattern(pattern)
        if policy is None:
            try:
                policy = RoutePolicy.model_validate({"pattern": pattern, **options})
            except ValidationError as exc:
                raise ConfigError(f"Invalid cache options for {pattern}: {exc}") from exc
        elif policy.pattern != pattern:
            policy = policy.model_copy(update={"pattern": pattern})
        self._policies[pattern] = policy
        return policy

    def unregister(self, pattern: str) -> bool:
        """Remove *pattern*.  Returns ``False`` if it was not registered."""
        return self._policies.pop(pattern, None) is not None

    def policy_for(self, path: str, method: str) -> tuple[Optional[RoutePolicy], bool]:
        """Resolve the policy for a concrete request.

        Returns:
            ``(policy, True)`` for the first registered policy whose pattern
            matches *path* and whose methods include *method*
            (case-insensitive); ``(None, False)`` otherwise.
        """
        for pattern, policy in self._policies.items():
            if policy.allows(method) and compile_pattern(pattern).matches(path):
                return policy, True
        return None, False

    def is_cacheable(self, path: str, method: str) -> bool:
        """Return ``True`` if some policy covers *path* and *method*."""
        return self.policy_for(path, method)[1]

    def get(self, pattern: str) -> Optional[RoutePolicy]:
        """Return the policy registered for exactly *pattern*, if any."""
        return self._policies.get(pattern)

    def policies(self) -> list[RoutePolicy]:
        """Return all policies in precedence order."""
        return list(self._policies.values())

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, pattern: object) -> bool:
        return pattern in self._policies

    def __iter__(self) -> Iterator[RoutePolicy]:
        return iter(self.policies())

    # ------------------------------------------------------------------ #
    # Construction from documents
    # ------------------------------------------------------------------ #

    @classmethod
    def from_mapping(cls, data: Any) -> CachePolicyRegistry:
        """Build a registry from a parsed policy document.

        Accepts either ``{"routes": [...]}`` or a bare list of route
        mappings, each with at least a ``pattern`` key.

        Raises:
            ConfigError: If the document has the wrong shape or a route
                fails validation.
        """
        routes = data.get("routes", []) if isinstance(data, dict) else data
        if not isinstance(routes, list):
            raise ConfigError("Policy document must contain a list of routes")

        registry = cls()
        for index, route in enumerate(routes):
            if not isinstance(route, dict) or "pattern" not in route:
                raise ConfigError(f"Route #{index} must be a mapping with a 'pattern' key")
            options = {k: v for k, v in route.items() if k != "pattern"}
            registry.register(str(route["pattern"]), **options)
        return registry


def load_policies(path: str | Path) -> CachePolicyRegistry:
    """Load a :class:`CachePolicyRegistry` from a JSON or YAML file.

    Raises:
        ConfigError: If the file cannot be read or parsed, or a route is
            invalid.
    """
    from routecache.config import load_document

    return CachePolicyRegistry.from_mapping(load_document(path))
