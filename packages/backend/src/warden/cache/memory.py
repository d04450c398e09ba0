"""In-process cache store.

Learn: same contract as RedisCacheStore, for WARDEN_STORAGE_BACKEND=memory
and for tests. Expiry is lazy — a key is dropped the next time someone
touches it after its deadline. The clock is injectable so tests can jump
past a lockout window instead of sleeping through it.

Only consistent within one process; never run more than one API worker
on this backend.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Callable, Optional


class MemoryCacheStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._values: dict[str, str] = {}
        self._sets: dict[str, set[str]] = {}
        self._deadlines: dict[str, float] = {}
        self._lock = threading.RLock()

    # ─── Expiry ───────────────────────────────────────────

    def _purge_if_expired(self, key: str) -> None:
        deadline = self._deadlines.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._values.pop(key, None)
            self._sets.pop(key, None)
            self._deadlines.pop(key, None)

    def _exists(self, key: str) -> bool:
        self._purge_if_expired(key)
        return key in self._values or key in self._sets

    def ttl_remaining(self, key: str) -> Optional[float]:
        """Seconds until expiry, None for a missing key or a key without TTL."""
        with self._lock:
            if not self._exists(key) or key not in self._deadlines:
                return None
            return self._deadlines[key] - self._clock()

    # ─── CacheStore ───────────────────────────────────────

    async def set(self, key: str, value: str, ttl: Optional[timedelta] = None) -> None:
        with self._lock:
            self._values[key] = value
            self._sets.pop(key, None)
            if ttl is not None:
                self._deadlines[key] = self._clock() + ttl.total_seconds()
            else:
                self._deadlines.pop(key, None)

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            self._purge_if_expired(key)
            return self._values.get(key)

    async def delete(self, key: str) -> int:
        with self._lock:
            if not self._exists(key):
                return 0
            self._values.pop(key, None)
            self._sets.pop(key, None)
            self._deadlines.pop(key, None)
            return 1

    async def increment(self, key: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            count = int(self._values.get(key, "0")) + 1
            self._values[key] = str(count)
            return count

    async def expire(self, key: str, ttl: timedelta) -> bool:
        with self._lock:
            if not self._exists(key):
                return False
            self._deadlines[key] = self._clock() + ttl.total_seconds()
            return True

    async def add_to_set(self, key: str, member: str) -> None:
        with self._lock:
            self._purge_if_expired(key)
            self._sets.setdefault(key, set()).add(member)

    async def remove_from_set(self, key: str, member: str) -> None:
        with self._lock:
            self._purge_if_expired(key)
            members = self._sets.get(key)
            if members is not None:
                members.discard(member)
                if not members:
                    self._sets.pop(key, None)
                    self._deadlines.pop(key, None)

    async def members_of(self, key: str) -> set[str]:
        with self._lock:
            self._purge_if_expired(key)
            return set(self._sets.get(key, set()))

    async def increment_window(self, key: str, ttl: timedelta) -> int:
        with self._lock:
            if not self._exists(key):
                self._values[key] = "0"
                self._deadlines[key] = self._clock() + ttl.total_seconds()
            count = int(self._values[key]) + 1
            self._values[key] = str(count)
            return count

    async def set_if_absent(self, key: str, value: str, ttl: timedelta) -> bool:
        with self._lock:
            if self._exists(key):
                return False
            self._values[key] = value
            self._deadlines[key] = self._clock() + ttl.total_seconds()
            return True

    async def delete_if_equals(self, key: str, value: str) -> int:
        with self._lock:
            self._purge_if_expired(key)
            if self._values.get(key) != value:
                return 0
            self._values.pop(key, None)
            self._deadlines.pop(key, None)
            return 1
