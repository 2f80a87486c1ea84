"""Domain models for the daily generation quota."""

from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(frozen=True)
class QuotaRecord:
    """Generation count for one user on one UTC day."""

    user_key: str
    day_key: str
    count: int = 0


def day_key(now: datetime) -> str:
    """Return the UTC calendar date (YYYY-MM-DD) for a timestamp."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).date().isoformat()
