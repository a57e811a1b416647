"""Route pattern matching and parameter extraction.

Patterns and request paths are ``/``-delimited segment sequences.  A pattern
segment that starts with ``$`` is a named capture; every other segment must
equal the corresponding path segment exactly::

    /user/$id/$tab   matches   /user/42/settings   -> {"id": "42", "tab": "settings"}
    /user/$id        does not match   /user/42/extra   (segment count differs)

There is no prefix or partial matching.  Before comparison a path loses its
query string and any trailing slashes, so ``/user/42/?tab=x`` is treated as
``/user/42``.

Captured values are sanitised by :func:`sanitize_parameter` before they are
returned, because they end up inside cache keys: only ASCII letters,
digits, ``-`` and ``_`` survive, truncated to 255 characters.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Optional

from routecache.exceptions import InvalidPatternError

MAX_PARAMETER_LENGTH = 255

_CAPTURE_NAME = re.compile(r"^[A-Za-z0-9_]+$")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_\-]")


@dataclass(frozen=True)
class CompiledPattern:
    """A parsed route pattern.

    ``segments`` holds one ``(capture_name, literal)`` pair per segment;
    ``capture_name`` is ``None`` for literal segments.
    """

    pattern: str
    segments: tuple[tuple[Optional[str], str], ...]

    @property
    def captures(self) -> list[str]:
        """Capture names in pattern order (duplicates preserved)."""
        return [name for name, _ in self.segments if name is not None]

    def matches(self, path: str) -> bool:
        """Return ``True`` if *path* has the same segment count and every literal matches."""
        parts = split_path(path)
        if len(parts) != len(self.segments):
            return False
        for (name, literal), part in zip(self.segments, parts):
            if name is not None:
                if not part:
                    return False
            elif part != literal:
                return False
        return True

    def extract(self, path: str) -> dict[str, str]:
        """Return sanitised capture values for *path*, or ``{}`` if it does not match.

        When a name is captured twice the later segment wins.
        """
        if not self.matches(path):
            return {}
        params: dict[str, str] = {}
        for (name, _), part in zip(self.segments, split_path(path)):
            if name is not None:
                params[name] = sanitize_parameter(part)
        return params


@functools.lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> CompiledPattern:
    """Parse *pattern* into a :class:`CompiledPattern`.

    Results are memoised, so repeated matching against registered patterns
    does not re-parse them.

    Raises:
        InvalidPatternError: If the pattern does not start with ``/`` or a
            capture segment has an empty or non-word name.
    """
    if not pattern.startswith("/"):
        raise InvalidPatternError(f"Route pattern must start with '/': {pattern!r}")

    segments: list[tuple[Optional[str], str]] = []
    for segment in split_path(pattern):
        if segment.startswith("$"):
            name = segment[1:]
            if not _CAPTURE_NAME.match(name):
                raise InvalidPatternError(
                    f"Invalid capture {segment!r} in route pattern {pattern!r}"
                )
            segments.append((name, segment))
        else:
            segments.append((None, segment))
    return CompiledPattern(pattern=pattern, segments=tuple(segments))


def matches(pattern: str, path: str) -> bool:
    """Return ``True`` if *path* matches *pattern*.

    Example::

        >>> matches("/user/$id", "/user/42")
        True
        >>> matches("/user/$id", "/user/42/extra")
        False
    """
    return compile_pattern(pattern).matches(path)


def extract(pattern: str, path: str) -> dict[str, str]:
    """Extract named, sanitised parameters from *path* according to *pattern*.

    Example::

        >>> extract("/user/$id/$tab", "/user/42/settings")
        {'id': '42', 'tab': 'settings'}
    """
    return compile_pattern(pattern).extract(path)


def split_path(path: str) -> list[str]:
    """Split a path into segments.

    The query string and trailing slashes are dropped first; empty interior
    segments are kept so that ``//`` never matches a capture.

    ``"/api/posts/"``  -> ``["api", "posts"]``
    ``"/"``            -> ``[]``
    """
    path = path.split("?", 1)[0].rstrip("/")
    if not path:
        return []
    if path.startswith("/"):
        path = path[1:]
    return path.split("/")


def sanitize_parameter(value: str, max_length: int = MAX_PARAMETER_LENGTH) -> str:
    """Strip everything but ``[A-Za-z0-9_-]`` from *value* and truncate it."""
    value = value.replace("\0", "")
    return _UNSAFE_CHARS.sub("", value)[:max_length]
