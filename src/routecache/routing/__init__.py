"""Route matching and caching policies.

* :mod:`routecache.routing.patterns` -- ``$name`` route templates,
  :func:`matches` and :func:`extract`.
* :mod:`routecache.routing.registry` -- :class:`CachePolicyRegistry`, the
  first-match table of :class:`~routecache.models.RoutePolicy` objects.
"""

from routecache.routing.patterns import (
    CompiledPattern,
    compile_pattern,
    extract,
    matches,
    sanitize_parameter,
    split_path,
)
from routecache.routing.registry import CachePolicyRegistry, load_policies

__all__ = [
    "CachePolicyRegistry",
    "CompiledPattern",
    "compile_pattern",
    "extract",
    "load_policies",
    "matches",
    "sanitize_parameter",
    "split_path",
]
