"""Disk-backed TTL store for cached responses.

Uses :mod:`diskcache` as the durable backing store.  Each key maps to a
plain dict holding the fields of a :class:`~routecache.models.CacheEntry`,
pickled by diskcache so payloads keep their Python types. Every record
carries its own ``created_at``/``expires_at`` timestamps and expiry is
enforced here rather than by diskcache:

* **Lazy expiration** -- :meth:`CacheStore.get` never returns an entry whose
  ``expires_at`` has passed; the stale record is deleted on the way out.
* **Self-healing** -- a record that cannot be decoded is treated as a miss
  and deleted.
* **Atomic writes** -- each ``set`` is a single SQLite transaction, so a
  concurrent reader sees either the old record or the new one, never a
  partial write.  Check-then-delete sequences run inside
  :meth:`diskcache.Cache.transact`.

Entries can carry a *tag* (``route:<pattern>`` or ``api:<endpoint>``, see
:mod:`routecache.cache.keys`) which :meth:`CacheStore.evict` uses to drop
every entry of one route or endpoint.

See Also:
    :class:`~routecache.models.CacheConfig` -- the Pydantic model that
    controls ``enabled`` and ``default_ttl``.
"""

from __future__ import annotations

import os
import pickle
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Optional

import diskcache
from pydantic import ValidationError

from routecache.exceptions import CacheWriteError, CorruptRecordError, StorageUnavailableError
from routecache.models import MISS, CacheConfig, CacheEntry, CacheStats, Lookup
from routecache.output import debug, warning

STORAGE_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)

_PICKLE_ERRORS = (pickle.PicklingError, TypeError, AttributeError)
_UNPICKLE_ERRORS = (
    pickle.UnpicklingError,
    EOFError,
    AttributeError,
    ImportError,
    IndexError,
    KeyError,
    ValueError,
)


class CacheStore:
    """TTL key/value store persisted in a namespace-scoped directory.

    Args:
        cache_dir: Root directory for the cache.  A ``<namespace>/``
            subdirectory is created inside it.
        config: Cache configuration (``enabled`` flag and ``default_ttl``).
        namespace: Subdirectory name separating unrelated stores that share
            one root.
        clock: Returns the current unix time in seconds.  Injected by tests.

    Raises:
        StorageUnavailableError: If caching is enabled and the directory
            cannot be created, is not writable, or cannot be opened.

    Example::

        from routecache.cache import CacheStore
        from routecache.models import CacheConfig

        store = CacheStore("/tmp/route-cache", CacheConfig(default_ttl=300))
        store.set("k", {"id": 1}, ttl_seconds=60)
        payload, found = store.get("k")
    """

    def __init__(
        self,
        cache_dir: str | Path,
        config: Optional[CacheConfig] = None,
        namespace: str = "responses",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or CacheConfig()
        self._directory = Path(cache_dir) / namespace
        self._clock = clock
        self._cache: Optional[diskcache.Cache] = None
        if self._config.enabled:
            self._cache = _open_cache(self._directory)

    @property
    def enabled(self) -> bool:
        """Whether the store is backed by an open cache directory."""
        return self._cache is not None

    @property
    def directory(self) -> Path:
        """The namespace-scoped directory holding the records."""
        return self._directory

    @property
    def default_ttl(self) -> int:
        """TTL applied when :meth:`set` is called without one."""
        return self._config.default_ttl

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get(self, key: str) -> Lookup:
        """Look up a cached payload.

        Args:
            key: The canonical cache key.

        Returns:
            ``Lookup(payload, True)`` on a hit.  ``Lookup(None, False)`` when
            the key is absent, its record is corrupt or expired (the record
            is deleted in both cases), the backing store cannot be read, or
            caching is disabled.
        """
        if self._cache is None:
            return MISS

        try:
            entry = self._read(key)
        except CorruptRecordError as exc:
            debug(str(exc))
            self._discard_if_stale(key)
            return MISS
        except STORAGE_ERRORS as exc:
            warning(f"Cache read failed for {key}: {exc}")
            return MISS

        if entry is None:
            return MISS
        if entry.is_expired(self._clock()):
            self._discard_if_stale(key)
            return MISS
        return Lookup(entry.payload, True)

    def has(self, key: str) -> bool:
        """Return ``True`` if *key* holds a valid, unexpired entry."""
        return self.get(key).found

    def keys(self) -> list[str]:
        """Return every physical key, including expired and corrupt records.

        An unreadable backing store yields an empty list and a warning.
        """
        if self._cache is None:
            return []
        try:
            return list(self._cache.iterkeys())
        except STORAGE_ERRORS as exc:
            warning(f"Cannot list cache keys in {self._directory}: {exc}")
            return []

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def set(
        self,
        key: str,
        payload: Any,
        ttl_seconds: Optional[int] = None,
        tag: Optional[str] = None,
    ) -> bool:
        """Store *payload* under *key*, replacing any previous entry.

        Args:
            key: The canonical cache key.
            payload: Any picklable value.  It is returned with its Python
                type intact (bytes stay bytes, tuples stay tuples).
            ttl_seconds: Lifetime in seconds; ``None`` uses the configured
                default and negative values are clamped to ``0``.
            tag: Optional grouping label (a namespaced route or endpoint
                tag) for :meth:`evict`.

        Returns:
            ``True`` once the entry is written, ``False`` when caching is
            disabled.

        Raises:
            CacheWriteError: If the payload cannot be serialised or the
                backing store rejects the write.
        """
        if self._cache is None:
            return False

        ttl = self._config.default_ttl if ttl_seconds is None else max(0, int(ttl_seconds))
        now = self._clock()
        record = {
            "key": key,
            "payload": payload,
            "created_at": now,
            "expires_at": now + ttl,
            "ttl_seconds": ttl,
            "tag": tag,
        }
        try:
            self._cache.set(key, record, tag=tag, retry=True)
        except _PICKLE_ERRORS as exc:
            raise CacheWriteError(f"Cannot serialise payload for {key}: {exc}") from exc
        except STORAGE_ERRORS as exc:
            raise CacheWriteError(f"Cannot write cache entry {key}: {exc}") from exc
        return True

    def delete(self, key: str) -> bool:
        """Remove *key* if present.  Deleting an absent key is not an error.

        Returns:
            ``True`` on success, ``False`` when caching is disabled.

        Raises:
            CacheWriteError: If the backing store rejects the delete.
        """
        if self._cache is None:
            return False
        try:
            self._cache.delete(key, retry=True)
        except STORAGE_ERRORS as exc:
            raise CacheWriteError(f"Cannot delete cache entry {key}: {exc}") from exc
        return True

    def clear(self) -> int:
        """Remove every entry in this store's directory.

        Returns:
            The number of entries removed (``0`` when disabled).

        Raises:
            CacheWriteError: If the backing store cannot be cleared.
        """
        if self._cache is None:
            return 0
        try:
            return self._cache.clear(retry=True)
        except STORAGE_ERRORS as exc:
            raise CacheWriteError(f"Cannot clear cache at {self._directory}: {exc}") from exc

    def evict(self, tag: str) -> int:
        """Remove every entry stored with *tag*.

        Returns:
            The number of entries removed (``0`` when disabled).

        Raises:
            CacheWriteError: If the backing store rejects the eviction.
        """
        if self._cache is None:
            return 0
        try:
            return self._cache.evict(tag, retry=True)
        except STORAGE_ERRORS as exc:
            raise CacheWriteError(f"Cannot evict tag {tag!r}: {exc}") from exc

    def cleanup(self) -> int:
        """Delete expired and corrupt records.

        Returns:
            The number of records removed.
        """
        if self._cache is None:
            return 0

        removed = 0
        for key in self.keys():
            if self._discard_if_stale(key):
                removed += 1
        debug(f"Cache cleanup removed {removed} entries from {self._directory}")
        return removed

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def stats(self) -> CacheStats:
        """Return a :class:`~routecache.models.CacheStats` snapshot.

        Every record is read, so the cost grows with the number of entries.
        ``total_bytes`` is the summed size of the serialised records.
        """
        if self._cache is None:
            return CacheStats(enabled=False, default_ttl=self._config.default_ttl)

        now = self._clock()
        total = valid = expired = corrupt = size = 0
        for key in self.keys():
            try:
                raw = self._cache.get(key, retry=True)
            except STORAGE_ERRORS:
                continue
            except _UNPICKLE_ERRORS:
                total += 1
                corrupt += 1
                continue
            if raw is None:
                continue
            total += 1
            size += _record_size(raw)
            try:
                entry = _decode(key, raw)
            except CorruptRecordError:
                corrupt += 1
                continue
            if entry.is_expired(now):
                expired += 1
            else:
                valid += 1

        return CacheStats(
            enabled=True,
            directory=str(self._directory),
            default_ttl=self._config.default_ttl,
            total_entries=total,
            valid_entries=valid,
            expired_entries=expired,
            corrupt_entries=corrupt,
            total_bytes=size,
            total_size_formatted=format_bytes(size),
        )

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        if self._cache is not None:
            self._cache.close()

    def __enter__(self) -> CacheStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _read(self, key: str) -> Optional[CacheEntry]:
        """Fetch and decode the record for *key*, or ``None`` if absent."""
        assert self._cache is not None
        try:
            raw = self._cache.get(key, retry=True)
        except _UNPICKLE_ERRORS as exc:
            raise CorruptRecordError(key, f"cannot unpickle record: {exc}") from exc
        if raw is None:
            return None
        return _decode(key, raw)

    def _discard_if_stale(self, key: str) -> bool:
        """Delete *key* if its record is expired or corrupt.

        The record is re-read inside a transaction so that a fresh entry
        written concurrently is never removed.
        """
        assert self._cache is not None
        try:
            with self._cache.transact(retry=True):
                try:
                    entry = self._read(key)
                except CorruptRecordError:
                    entry = None
                else:
                    if entry is None or not entry.is_expired(self._clock()):
                        return False
                return self._cache.delete(key)
        except STORAGE_ERRORS as exc:
            warning(f"Cannot remove stale cache entry {key}: {exc}")
            return False


def _open_cache(directory: Path) -> diskcache.Cache:
    """Create *directory* if needed and open a diskcache store inside it."""
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageUnavailableError(
            f"Failed to create cache directory {directory}: {exc}"
        ) from exc
    if not os.access(directory, os.W_OK):
        raise StorageUnavailableError(f"Cache directory is not writable: {directory}")
    try:
        return diskcache.Cache(str(directory), tag_index=True)
    except STORAGE_ERRORS as exc:
        raise StorageUnavailableError(f"Cannot open cache at {directory}: {exc}") from exc


def _decode(key: str, raw: Any) -> CacheEntry:
    """Validate a raw record, raising :class:`CorruptRecordError` on any defect."""
    if not isinstance(raw, dict):
        raise CorruptRecordError(key, f"unexpected record type {type(raw).__name__}")
    try:
        entry = CacheEntry.model_validate(raw)
    except ValidationError as exc:
        raise CorruptRecordError(key, f"{exc.error_count()} validation errors") from exc
    if entry.key != key:
        raise CorruptRecordError(key, f"record belongs to {entry.key!r}")
    return entry


def _record_size(raw: Any) -> int:
    """Size of *raw* as pickled on disk."""
    try:
        return len(pickle.dumps(raw, protocol=pickle.HIGHEST_PROTOCOL))
    except _PICKLE_ERRORS:
        return 0


def format_bytes(size: int) -> str:
    """Format a byte count for humans, e.g. ``1536`` -> ``"1.5 KB"``."""
    units = ["B", "KB", "MB", "GB"]
    size = max(size, 0)
    power = 0
    while power < len(units) - 1 and size >= 1024 ** (power + 1):
        power += 1
    value = round(size / (1024 ** power), 2)
    return f"{value:g} {units[power]}"
