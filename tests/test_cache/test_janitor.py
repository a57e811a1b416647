"""Tests for expiration sweeps."""

from __future__ import annotations

import threading

import pytest

from routecache.cache import CacheStore, Janitor


def _fill(store: CacheStore, clock, expired: int, fresh: int) -> None:
    for i in range(expired):
        store.set(f"old{i}", i, ttl_seconds=10)
    for i in range(fresh):
        store.set(f"new{i}", i, ttl_seconds=10_000)
    clock.advance(60)


class TestSweep:
    def test_sweep_removes_expired(self, store: CacheStore, clock) -> None:
        _fill(store, clock, expired=2, fresh=1)
        assert Janitor(store).sweep() == 2
        assert store.keys() == ["new0"]


class TestMaybeSweep:
    @pytest.mark.parametrize(("draw", "probability", "removed"), [
        (1, 10, 2),
        (10, 10, 2),
        (11, 10, 0),
        (100, 100, 2),
        (50, 0, 0),
    ])
    def test_draw_against_probability(
        self, store: CacheStore, clock, draw: int, probability: int, removed: int
    ) -> None:
        _fill(store, clock, expired=2, fresh=1)
        janitor = Janitor(store, randint=lambda a, b: draw)
        assert janitor.maybe_sweep(probability) == removed

    def test_draw_range(self, store: CacheStore) -> None:
        seen: list[tuple[int, int]] = []

        def fake_randint(a: int, b: int) -> int:
            seen.append((a, b))
            return b

        Janitor(store, randint=fake_randint).maybe_sweep(50)
        assert seen == [(1, 100)]

    def test_zero_probability_skips_draw(self, store: CacheStore) -> None:
        def boom(a: int, b: int) -> int:
            raise AssertionError("randint should not be called")

        assert Janitor(store, randint=boom).maybe_sweep(0) == 0


class TestPeriodicSweep:
    def test_runs_and_stops(self, store: CacheStore, clock) -> None:
        _fill(store, clock, expired=3, fresh=0)
        swept = threading.Event()

        class RecordingJanitor(Janitor):
            def sweep(self) -> int:
                removed = super().sweep()
                swept.set()
                return removed

        periodic = RecordingJanitor(store).run_periodically(0.01)
        try:
            assert swept.wait(timeout=5)
        finally:
            periodic.stop()

        assert periodic.running is False
        assert store.keys() == []

    def test_failed_sweep_keeps_running(self, store: CacheStore) -> None:
        calls = threading.Event()
        attempts: list[int] = []

        class FlakyJanitor(Janitor):
            def sweep(self) -> int:
                attempts.append(1)
                if len(attempts) >= 2:
                    calls.set()
                raise RuntimeError("disk hiccup")

        periodic = FlakyJanitor(store).run_periodically(0.01)
        try:
            assert calls.wait(timeout=5)
        finally:
            periodic.stop()
        assert len(attempts) >= 2

    @pytest.mark.parametrize("interval", [0, -1])
    def test_invalid_interval(self, store: CacheStore, interval: float) -> None:
        with pytest.raises(ValueError):
            Janitor(store).run_periodically(interval)
