"""Expiration sweeps for a :class:`~routecache.cache.store.CacheStore`.

Expired records are already invisible to readers (lazy expiration); the
janitor reclaims their space.  Three triggers are supported:

* :meth:`Janitor.sweep` -- run now (operator command, cron job).
* :meth:`Janitor.maybe_sweep` -- run with a given percent probability,
  typically after a write.  Cheap on average, imprecise by nature.
* :meth:`Janitor.run_periodically` -- a daemon timer that sweeps on a
  fixed interval independent of request volume.
"""

from __future__ import annotations

import random
import threading
from typing import Callable, Optional

from routecache.cache.store import CacheStore
from routecache.output import debug, warning


class Janitor:
    """Removes expired entries from a store.

    Args:
        store: The store to sweep.
        randint: ``randint(a, b)`` source used by :meth:`maybe_sweep`.
            Defaults to :func:`random.randint`; injected by tests.
    """

    def __init__(
        self,
        store: CacheStore,
        randint: Callable[[int, int], int] = random.randint,
    ) -> None:
        self._store = store
        self._randint = randint

    def sweep(self) -> int:
        """Delete every expired or corrupt record and return how many were removed."""
        return self._store.cleanup()

    def maybe_sweep(self, probability_percent: int) -> int:
        """Sweep iff a uniform draw from ``[1, 100]`` is ``<= probability_percent``.

        Args:
            probability_percent: Chance of sweeping, ``0`` (never) to
                ``100`` (always).

        Returns:
            The number of records removed, ``0`` when the draw skipped the
            sweep.
        """
        if probability_percent <= 0:
            return 0
        draw = self._randint(1, 100)
        if draw > probability_percent:
            return 0
        debug(f"Probabilistic sweep triggered (draw {draw} <= {probability_percent})")
        return self.sweep()

    def run_periodically(self, interval_seconds: float) -> PeriodicSweep:
        """Start a background sweep every *interval_seconds*.

        Returns:
            A started :class:`PeriodicSweep`; call :meth:`PeriodicSweep.stop`
            to end it.
        """
        periodic = PeriodicSweep(self, interval_seconds)
        periodic.start()
        return periodic


class PeriodicSweep:
    """Chain of daemon :class:`threading.Timer` objects calling :meth:`Janitor.sweep`."""

    def __init__(self, janitor: Janitor, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._janitor = janitor
        self._interval = interval_seconds
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._stopped = False
        self.runs = 0

    def start(self) -> None:
        with self._lock:
            self._stopped = False
            self._schedule()

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def running(self) -> bool:
        return not self._stopped

    def _schedule(self) -> None:
        self._timer = threading.Timer(self._interval, self._tick)
        self._timer.daemon = True
        self._timer.start()

    def _tick(self) -> None:
        try:
            self._janitor.sweep()
        except Exception as exc:
            # Keep the timer chain alive; a failed sweep is retried next interval.
            warning(f"Periodic cache sweep failed: {exc}")
        with self._lock:
            self.runs += 1
            if not self._stopped:
                self._schedule()
