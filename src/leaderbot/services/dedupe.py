"""TTL-bounded set of recently seen webhook event keys."""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from leaderbot.domain.clock import Clock, utc_now

DEFAULT_TTL_SECONDS = 10 * 60
DEFAULT_MAX_ENTRIES = 5000


@dataclass
class TtlDedupeSet:
    """In-memory dedupe set with expiry and FIFO eviction.

    Expired entries are purged on every call; no background timer runs.
    When more than ``max_entries`` keys are held, the oldest insertions are
    dropped first.
    """

    ttl_seconds: int = DEFAULT_TTL_SECONDS
    max_entries: int = DEFAULT_MAX_ENTRIES
    clock: Clock = utc_now
    _entries: dict[str, datetime] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def has(self, key: str, now: datetime | None = None) -> bool:
        """Return true if the key was recorded and has not expired."""
        current = now or self.clock()
        with self._lock:
            self._prune(current)
            return key in self._entries

    def add(self, key: str, now: datetime | None = None) -> None:
        """Record a key, refreshing its expiry and insertion position."""
        current = now or self.clock()
        with self._lock:
            self._prune(current)
            self._insert(key, current)

    def seen(self, key: str, now: datetime | None = None) -> bool:
        """Return true if the key is already recorded, otherwise record it."""
        current = now or self.clock()
        with self._lock:
            self._prune(current)
            if key in self._entries:
                return True
            self._insert(key, current)
            return False

    def clear(self) -> None:
        """Forget every recorded key."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _insert(self, key: str, now: datetime) -> None:
        self._entries.pop(key, None)
        self._entries[key] = now + timedelta(seconds=self.ttl_seconds)
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]

    def _prune(self, now: datetime) -> None:
        expired = [
            key for key, expires_at in self._entries.items() if expires_at <= now
        ]
        for key in expired:
            del self._entries[key]
