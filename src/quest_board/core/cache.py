"""
Injectable expiring key/value cache.

The admission gatekeeper keeps form tokens, cancel-link tokens and rate-limit
counters in a :class:`Cache`. Call sites only use ``get``/``set``/``expire``
(plus the atomic ``pop`` for single-use reads), so a small deployment can run
on :class:`InMemoryCache` while a multi-instance deployment swaps in a shared
backend with the same interface.

Nothing stored here is authoritative. Losing the cache means players fetch a
new form token and rate-limit windows restart.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any, Protocol


class Cache(Protocol):
    """Minimal expiring cache contract."""

    def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` or ``None``."""

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""

    def expire(self, key: str) -> None:
        """Remove ``key`` immediately."""

    def pop(self, key: str) -> Any | None:
        """Atomically return and remove the live value for ``key``."""


class InMemoryCache:
    """
    Process-local :class:`Cache` with lazy expiry and periodic sweeping.

    Expired entries are dropped on read, and a full sweep runs at most once
    per ``sweep_interval`` seconds during writes so the map stays bounded even
    for keys that are never read again.

    Args:
        clock: Monotonic seconds source; injectable for tests.
        sweep_interval: Minimum seconds between full sweeps.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._live_value(key)

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            now = self._clock()
            self._entries[key] = (value, now + ttl_seconds)
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)

    def expire(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def pop(self, key: str) -> Any | None:
        with self._lock:
            value = self._live_value(key)
            self._entries.pop(key, None)
            return value

    def prune(self) -> int:
        """Drop every expired entry now. Returns the number removed."""
        with self._lock:
            return self._sweep(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _live_value(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def _sweep(self, now: float) -> int:
        stale = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in stale:
            del self._entries[key]
        self._last_sweep = now
        return len(stale)
