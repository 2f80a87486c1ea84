"""Daily generation quota."""

import threading
from dataclasses import dataclass, field
from datetime import datetime

from leaderbot.domain.quota import QuotaRecord, day_key

FREE_DAILY_LIMIT = 1


@dataclass
class QuotaGate:
    """Per-user, per-UTC-day generation counter with a hard limit.

    Records from a previous day are treated as a fresh zero count on first
    access, so no scheduled reset job is needed.
    """

    daily_limit: int = FREE_DAILY_LIMIT
    _records: dict[str, QuotaRecord] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def get(self, user_key: str, now: datetime) -> QuotaRecord:
        """Return today's quota record for the user."""
        with self._lock:
            return self._current(user_key, now)

    def can_generate(self, user_key: str, now: datetime) -> bool:
        """Return true while the user is below today's limit."""
        return self.get(user_key, now).count < self.daily_limit

    def increment(self, user_key: str, now: datetime) -> QuotaRecord:
        """Consume one generation from today's quota."""
        with self._lock:
            current = self._current(user_key, now)
            updated = QuotaRecord(
                user_key=user_key, day_key=current.day_key, count=current.count + 1
            )
            self._records[user_key] = updated
            return updated

    def prune_before(self, now: datetime) -> int:
        """Drop records from earlier days and return how many were removed."""
        today = day_key(now)
        with self._lock:
            stale = [
                key for key, record in self._records.items() if record.day_key != today
            ]
            for key in stale:
                del self._records[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _current(self, user_key: str, now: datetime) -> QuotaRecord:
        today = day_key(now)
        record = self._records.get(user_key)
        if record is None or record.day_key != today:
            record = QuotaRecord(user_key=user_key, day_key=today, count=0)
            self._records[user_key] = record
        return record
