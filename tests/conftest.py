"""Shared test fixtures for routecache.

Provides a controllable clock, stores and coordinators rooted in
``tmp_path``, isolated XDG/config environments, and output state
management.  These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from routecache.cache import CacheStore
from routecache.coordinator import CacheCoordinator
from routecache.models import CacheConfig
from routecache.output import OutputFormat, OutputManager, reset_output, set_output
from routecache.routing import CachePolicyRegistry


class FakeClock:
    """A manually advanced stand-in for :func:`time.time`."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; when capsys swaps those streams the cached references go
    stale.  Resetting forces a fresh manager on next use.

    NO_COLOR is set so diagnostics are printed plainly rather than through a
    Rich console that wraps at the terminal width (tests that exercise colour
    detection set or clear it themselves).
    """
    monkeypatch.setenv("NO_COLOR", "1")
    reset_output()
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Cache fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path, clock: FakeClock) -> CacheStore:
    """An enabled store under tmp_path driven by the fake clock."""
    s = CacheStore(tmp_path, CacheConfig(default_ttl=300), clock=clock)
    yield s
    s.close()


@pytest.fixture
def disabled_store(tmp_path: Path) -> CacheStore:
    s = CacheStore(tmp_path, CacheConfig(enabled=False))
    yield s
    s.close()


@pytest.fixture
def registry() -> CachePolicyRegistry:
    """A registry resembling a small content site's route table."""
    reg = CachePolicyRegistry()
    reg.register("/api/posts", ttl=1800)
    reg.register("/api/posts/$id", ttl=3600)
    reg.register("/api/search", ttl=900, vary_by_params=True)
    reg.register("/api/feed", ttl=900, vary_by_params=False)
    reg.register("/api/user/profile", ttl=600, vary_by_headers=["Authorization"])
    reg.register("/user/$name/$lastname", ttl=3600)
    return reg


@pytest.fixture
def coordinator(store: CacheStore, registry: CachePolicyRegistry) -> CacheCoordinator:
    """A coordinator with auto-cleanup off so sweeps never happen implicitly."""
    return CacheCoordinator(store, registry, CacheConfig(auto_cleanup=False))


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_CACHE_HOME into tmp_path and clears all
    ROUTECACHE_CACHE_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setattr("routecache.config._is_xdg_platform", lambda: True)
    for suffix in ["ENABLED", "TTL", "DIR", "AUTO_CLEANUP", "CLEANUP_PROBABILITY"]:
        monkeypatch.delenv(f"ROUTECACHE_CACHE_{suffix}", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def verbose_output() -> OutputManager:
    """Install a PLAIN, verbose OutputManager so debug lines reach stderr."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.JSON, no_color=True)
    set_output(output)
    yield output
    reset_output()
