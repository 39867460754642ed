"""
Process-local TTL cache for simulation responses.

Entries are immutable once stored and replaced wholesale on refresh. A stale
entry (age >= TTL) stays resident and is simply ignored until it is
overwritten or ``clear()`` runs; there is no size-based eviction, so the
owner's lifecycle (process restart, ``clear()`` on disable) bounds growth.

Per-key state:
    ABSENT --store--> FRESH --(age >= ttl)--> STALE --store--> FRESH

Concurrency: all methods are synchronous, so under asyncio every call is
atomic with respect to other coroutines. Two coroutines that both miss on
the same key and both fetch will both store; the later store wins. Callers
that want one fetch per key wrap lookup+fetch in ``single_flight(key)``
(LifeSimulatorClient does).
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, Optional

from .config import CacheKeyMode, DEFAULT_CACHE_DURATION_MS
from .schemas import ActivityResponse, SimulationConfig


def epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    data: ActivityResponse
    stored_at_ms: int


def cache_key_for(config: SimulationConfig, mode: CacheKeyMode = CacheKeyMode.SUBJECT_AND_TIME) -> str:
    """Derive the cache key for a simulation request.

    Equal (name, residence name, current_time) tuples yield equal keys. In
    SUBJECT mode the timestamp is left out.
    """

    if mode is CacheKeyMode.SUBJECT:
        return f"{config.name}_{config.residence.name}"
    return f"{config.name}_{config.residence.name}_{config.current_time}"


class ResponseCache:
    """Key -> CacheEntry store with time-to-live expiry."""

    def __init__(
        self,
        duration_ms: int = DEFAULT_CACHE_DURATION_MS,
        *,
        key_mode: CacheKeyMode = CacheKeyMode.SUBJECT_AND_TIME,
        clock: Callable[[], int] = epoch_ms,
    ):
        self.duration_ms = duration_ms
        self.key_mode = key_mode
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def key_for(self, config: SimulationConfig) -> str:
        return cache_key_for(config, self.key_mode)

    def entry(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry (fresh or stale) without a freshness check."""
        return self._entries.get(key)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.stored_at_ms) < self.duration_ms

    def get_fresh(self, key: str) -> Optional[ActivityResponse]:
        """Return cached data when the entry exists and is younger than the TTL."""
        entry = self._entries.get(key)
        if entry is None or not self.is_fresh(entry):
            return None
        return entry.data

    def store(self, key: str, data: ActivityResponse) -> CacheEntry:
        entry = CacheEntry(key=key, data=data, stored_at_ms=self._clock())
        self._entries[key] = entry
        return entry

    @asynccontextmanager
    async def single_flight(self, key: str) -> AsyncIterator[None]:
        """Serialize lookup+fetch for one key.

        The lock lives only while someone holds or waits on it, so keys that
        are never requested again do not leave locks behind.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    @property
    def in_flight(self) -> int:
        """Number of keys with a lookup+fetch currently holding or awaiting the lock."""
        return len(self._locks)

    def clear(self) -> None:
        # Locks stay: an in-flight fetch still owns its key.
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        fresh = sum(1 for entry in self._entries.values() if self.is_fresh(entry))
        return {
            "size": len(self._entries),
            "fresh": fresh,
            "stale": len(self._entries) - fresh,
            "duration_ms": self.duration_ms,
        }


__all__ = ["CacheEntry", "ResponseCache", "cache_key_for", "epoch_ms"]
