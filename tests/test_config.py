"""Tests for routecache.config -- XDG paths, atomic writes, settings, env overrides."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from routecache.config import (
    _atomic_write,
    get_cache_dir,
    get_config_dir,
    load_document,
    load_settings,
    resolve_cache_config,
    resolve_cache_dir,
    save_settings,
)
from routecache.exceptions import ConfigError, StorageUnavailableError
from routecache.models import CacheConfig, RoutePolicy, Settings


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    """Write a dict as JSON to *path*, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPathsLinux:
    """XDG paths on Linux (the default XDG platform)."""

    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("routecache.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "routecache"
        assert result.is_dir()

    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_config"
        monkeypatch.setattr("routecache.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(custom))

        result = get_config_dir()
        assert result == custom / "routecache"
        assert result.is_dir()

    def test_cache_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("routecache.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CACHE_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_cache_dir()
        assert result == tmp_path / ".cache" / "routecache"
        assert result.is_dir()

    def test_cache_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_cache"
        monkeypatch.setattr("routecache.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CACHE_HOME", str(custom))

        result = get_cache_dir()
        assert result == custom / "routecache"
        assert result.is_dir()


class TestXDGPathsFallback:
    """Fallback paths on non-XDG platforms (macOS, Windows)."""

    def test_config_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("routecache.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".routecache"
        assert result.is_dir()

    def test_cache_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("routecache.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_cache_dir()
        assert result == tmp_path / ".routecache" / "cache"
        assert result.is_dir()


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_with_content(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        _atomic_write(target, "hello world")
        assert target.read_text(encoding="utf-8") == "hello world"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        target.write_text("old content", encoding="utf-8")
        _atomic_write(target, "new content")
        assert target.read_text(encoding="utf-8") == "new content"

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "c" / "test.txt"
        _atomic_write(target, "deep write")
        assert target.read_text(encoding="utf-8") == "deep write"

    def test_no_temp_files_left_on_success(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        _atomic_write(target, "content")
        assert list(tmp_path.iterdir()) == [target]

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        with patch("routecache.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                _atomic_write(target, "will fail")
        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestLoadDocument:
    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.json"
        _write_json(path, {"routes": []})
        assert load_document(path) == {"routes": []}

    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.yaml"
        path.write_text("cache:\n  default_ttl: 60\n", encoding="utf-8")
        assert load_document(path) == {"cache": {"default_ttl": 60}}

    def test_yaml_without_extension(self, tmp_path: Path) -> None:
        path = tmp_path / "routes"
        path.write_text("- pattern: /a\n", encoding="utf-8")
        assert load_document(path) == [{"pattern": "/a"}]

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_document(path)

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.yml"
        path.write_text("a: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_document(path)

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_document(tmp_path / "missing.json")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_load_returns_defaults_when_missing(self, isolated_config: Path) -> None:
        settings = load_settings()
        assert settings == Settings()
        assert settings.cache.default_ttl == 3600

    def test_save_and_load_roundtrip(self, isolated_config: Path) -> None:
        settings = Settings(
            cache=CacheConfig(default_ttl=60, cleanup_probability=25),
            routes=[RoutePolicy(pattern="/api/posts/$id", ttl_seconds=120)],
        )
        path = save_settings(settings)
        assert path == isolated_config / "config" / "routecache" / "config.json"

        loaded = load_settings()
        assert loaded.cache.default_ttl == 60
        assert loaded.cache.cleanup_probability == 25
        assert loaded.routes[0].pattern == "/api/posts/$id"
        assert loaded.routes[0].ttl_seconds == 120

    def test_saved_settings_are_valid_json(self, tmp_path: Path) -> None:
        path = save_settings(Settings(), tmp_path / "settings.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert "directory" not in data["cache"]
        assert data["routes"] == []

    def test_load_yaml_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(
            "cache:\n"
            "  default_ttl: 30\n"
            "routes:\n"
            "  - pattern: /api/search\n"
            "    ttl: 900\n",
            encoding="utf-8",
        )
        settings = load_settings(path)
        assert settings.cache.default_ttl == 30
        assert settings.routes[0].ttl_seconds == 900

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path) == Settings()

    def test_invalid_schema_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        _write_json(path, {"cache": {"default_ttl": -5}})
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings(path)

    def test_explicit_missing_path_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_settings(tmp_path / "nope.json")


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


class TestResolveCacheConfig:
    def test_defaults(self, isolated_config: Path) -> None:
        config = resolve_cache_config()
        assert config.enabled is True
        assert config.default_ttl == 3600
        assert config.auto_cleanup is True
        assert config.cleanup_probability == 10

    def test_file_values_used(self, isolated_config: Path) -> None:
        save_settings(Settings(cache=CacheConfig(default_ttl=42)))
        assert resolve_cache_config().default_ttl == 42

    def test_env_overrides_file(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        save_settings(Settings(cache=CacheConfig(default_ttl=42, enabled=True)))
        monkeypatch.setenv("ROUTECACHE_CACHE_TTL", "7")
        monkeypatch.setenv("ROUTECACHE_CACHE_ENABLED", "false")
        monkeypatch.setenv("ROUTECACHE_CACHE_DIR", str(isolated_config / "elsewhere"))
        monkeypatch.setenv("ROUTECACHE_CACHE_AUTO_CLEANUP", "off")
        monkeypatch.setenv("ROUTECACHE_CACHE_CLEANUP_PROBABILITY", "50")

        config = resolve_cache_config()
        assert config.default_ttl == 7
        assert config.enabled is False
        assert config.directory == str(isolated_config / "elsewhere")
        assert config.auto_cleanup is False
        assert config.cleanup_probability == 50

    def test_explicit_settings(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROUTECACHE_CACHE_ENABLED", "yes")
        config = resolve_cache_config(Settings(cache=CacheConfig(enabled=False, default_ttl=9)))
        assert config.enabled is True
        assert config.default_ttl == 9

    def test_empty_env_ignored(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROUTECACHE_CACHE_TTL", "")
        assert resolve_cache_config().default_ttl == 3600

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("ROUTECACHE_CACHE_ENABLED", "maybe"),
            ("ROUTECACHE_CACHE_TTL", "soon"),
            ("ROUTECACHE_CACHE_TTL", "-1"),
            ("ROUTECACHE_CACHE_CLEANUP_PROBABILITY", "101"),
        ],
    )
    def test_invalid_env_raises(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch, name: str, value: str
    ) -> None:
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError):
            resolve_cache_config()


class TestResolveCacheDir:
    def test_configured_directory(self, tmp_path: Path) -> None:
        assert resolve_cache_dir(CacheConfig(directory=str(tmp_path))) == tmp_path

    def test_home_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        assert resolve_cache_dir(CacheConfig(directory="~/rc")) == tmp_path / "rc"

    def test_default_is_xdg_cache_dir(self, isolated_config: Path) -> None:
        assert resolve_cache_dir(CacheConfig()) == isolated_config / "cache" / "routecache"

    def test_uncreatable_default_raises_storage_error(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A cache home that is a regular file surfaces as StorageUnavailableError."""
        blocker = isolated_config / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")
        monkeypatch.setenv("XDG_CACHE_HOME", str(blocker))
        with pytest.raises(StorageUnavailableError, match="Failed to create cache directory"):
            resolve_cache_dir(CacheConfig())


class TestEndpointTTL:
    def test_known_endpoint(self) -> None:
        assert CacheConfig().endpoint_ttl("media") == 86400

    def test_case_insensitive(self) -> None:
        assert CacheConfig().endpoint_ttl("Posts") == 1800

    def test_unknown_falls_back_to_default(self) -> None:
        assert CacheConfig(default_ttl=77).endpoint_ttl("widgets") == 77
