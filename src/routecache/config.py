"""Configuration management with XDG paths, atomic writes, and env overrides.

This module handles all persistent configuration for routecache:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.routecache/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_cache_dir`.
* **Settings** -- A single :class:`~routecache.models.Settings` JSON file
  holding the cache section and the route policy table.  Explicit settings
  files may also be YAML.  See :func:`load_settings` and
  :func:`save_settings`.
* **Environment overrides** -- :func:`resolve_cache_config` layers
  ``ROUTECACHE_CACHE_*`` variables over the file values.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) so a crash never leaves a truncated config behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml

from routecache.exceptions import ConfigError, StorageUnavailableError
from routecache.models import CacheConfig, Settings

_APP_NAME = "routecache"
_CONFIG_FILENAME = "config.json"

ENV_PREFIX = "ROUTECACHE_CACHE_"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/routecache/`` (default ``~/.config/routecache/``).
    On macOS/Windows: ``~/.routecache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the default cache root, creating it if necessary.

    Cached data can be safely deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/routecache/`` (default ``~/.cache/routecache/``).
    On macOS/Windows: ``~/.routecache/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  On any failure
    the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Documents ---


def load_document(path: str | Path) -> Any:
    """Read a JSON or YAML document from *path*.

    ``.yaml``/``.yml`` files are parsed as YAML; everything else is tried
    as JSON first and then as YAML (valid JSON is also valid YAML, but the
    JSON parser is stricter and reports better errors).

    Raises:
        ConfigError: If the file is missing, unreadable, or unparseable.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigError(f"Config file not found: {file_path}")
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {file_path}: {exc}") from exc

    if file_path.suffix.lower() not in (".yaml", ".yml"):
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            if file_path.suffix.lower() == ".json":
                raise ConfigError(f"Invalid JSON in {file_path}: {exc}") from exc

    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {file_path}: {exc}") from exc


# --- Settings ---


def _settings_path() -> Path:
    """Path to the user settings file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from *path* or the XDG config directory.

    Returns:
        The deserialised :class:`~routecache.models.Settings`.  When *path*
        is ``None`` and no user settings file exists, a default instance is
        returned.

    Raises:
        ConfigError: If the file exists but cannot be parsed or fails
            Pydantic validation, or an explicit *path* does not exist.
    """
    target = Path(path) if path is not None else _settings_path()
    if path is None and not target.is_file():
        return Settings()
    data = load_document(target)
    if data is None:
        return Settings()
    try:
        return Settings.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid settings at {target}: {exc}") from exc


def save_settings(settings: Settings, path: str | Path | None = None) -> Path:
    """Persist *settings* atomically as JSON and return the written path."""
    target = Path(path) if path is not None else _settings_path()
    data = settings.model_dump(mode="json", exclude_none=True)
    _atomic_write(target, json.dumps(data, indent=2) + "\n")
    return target


# --- Precedence resolution ---


def resolve_cache_config(settings: Optional[Settings] = None) -> CacheConfig:
    """Return the effective cache config.

    Precedence (high to low):
        1. Environment variables (``ROUTECACHE_CACHE_ENABLED``,
           ``ROUTECACHE_CACHE_TTL``, ``ROUTECACHE_CACHE_DIR``,
           ``ROUTECACHE_CACHE_AUTO_CLEANUP``,
           ``ROUTECACHE_CACHE_CLEANUP_PROBABILITY``)
        2. Settings file (``~/.config/routecache/config.json``)
        3. Defaults

    Raises:
        ConfigError: If an environment variable holds an invalid value.
    """
    if settings is None:
        settings = load_settings()
    updates: dict[str, Any] = {}

    enabled = _env_bool("ENABLED")
    if enabled is not None:
        updates["enabled"] = enabled
    ttl = _env_int("TTL")
    if ttl is not None:
        updates["default_ttl"] = ttl
    directory = os.environ.get(f"{ENV_PREFIX}DIR")
    if directory:
        updates["directory"] = directory
    auto_cleanup = _env_bool("AUTO_CLEANUP")
    if auto_cleanup is not None:
        updates["auto_cleanup"] = auto_cleanup
    probability = _env_int("CLEANUP_PROBABILITY")
    if probability is not None:
        updates["cleanup_probability"] = probability

    data = settings.cache.model_dump()
    data.update(updates)
    try:
        return CacheConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid cache settings from environment: {exc}") from exc


def resolve_cache_dir(config: CacheConfig) -> Path:
    """Return the configured cache root, or the XDG default when unset.

    Raises:
        StorageUnavailableError: If the default cache root cannot be created.
    """
    if config.directory:
        return Path(config.directory).expanduser()
    try:
        return get_cache_dir()
    except OSError as exc:
        raise StorageUnavailableError(f"Failed to create cache directory: {exc}") from exc


def _env_bool(name: str) -> Optional[bool]:
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"Expected a boolean for {ENV_PREFIX}{name}, got: {raw}")


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"Expected an integer for {ENV_PREFIX}{name}, got: {raw}") from None
