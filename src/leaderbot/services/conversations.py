"""In-memory conversation state store."""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from leaderbot.domain.clock import Clock, utc_now
from leaderbot.domain.conversation import ConversationRecord, Stage

DEFAULT_MAX_AGE = timedelta(days=7)


@dataclass
class ConversationStore:
    """Holds one immutable ConversationRecord per user key.

    Every mutator swaps the whole record under the store lock, so readers
    only ever see complete snapshots.
    """

    clock: Clock = utc_now
    _records: dict[str, ConversationRecord] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def get(self, user_key: str) -> ConversationRecord | None:
        """Return the record for a user, if present."""
        with self._lock:
            return self._records.get(user_key)

    def get_or_create(
        self, user_key: str, now: datetime | None = None
    ) -> ConversationRecord:
        """Return the user's record, creating an IDLE one if absent."""
        with self._lock:
            return self._get_or_create(user_key, now or self.clock())

    def set_stage(
        self, user_key: str, stage: Stage, now: datetime | None = None
    ) -> ConversationRecord:
        """Move the user to a stage."""
        return self._update(user_key, now, stage=stage)

    def set_photo(
        self, user_key: str, photo_url: str, now: datetime | None = None
    ) -> ConversationRecord:
        """Store a new source photo and wait for a style choice."""
        return self._update(
            user_key, now, last_photo_url=photo_url, stage=Stage.AWAITING_STYLE
        )

    def set_selected_style(
        self, user_key: str, style: str, now: datetime | None = None
    ) -> ConversationRecord:
        """Remember the style the user picked."""
        return self._update(user_key, now, selected_style=style)

    def set_preferred_lang(
        self, user_key: str, lang: str, now: datetime | None = None
    ) -> ConversationRecord:
        """Remember the language for outbound texts."""
        return self._update(user_key, now, preferred_lang=lang)

    def request_photo(
        self, user_key: str, style: str | None = None, now: datetime | None = None
    ) -> ConversationRecord:
        """Drop the current photo and wait for a new one.

        A given style becomes the pending style; otherwise the previous one
        is kept.
        """
        changes: dict[str, object] = {
            "last_photo_url": None,
            "stage": Stage.AWAITING_PHOTO,
        }
        if style is not None:
            changes["selected_style"] = style
        return self._update(user_key, now, **changes)

    def set_result(
        self, user_key: str, image_url: str, now: datetime | None = None
    ) -> ConversationRecord:
        """Store a generated image and mark the result as ready."""
        return self._update(
            user_key, now, last_generated_url=image_url, stage=Stage.RESULT_READY
        )

    def set_failure(
        self, user_key: str, style: str, now: datetime | None = None
    ) -> ConversationRecord:
        """Mark the last generation as failed, retaining the style for retry."""
        return self._update(user_key, now, selected_style=style, stage=Stage.FAILURE)

    def begin_processing(
        self, user_key: str, style: str, now: datetime | None = None
    ) -> ConversationRecord | None:
        """Atomically enter PROCESSING unless a generation is already running."""
        current_time = now or self.clock()
        with self._lock:
            record = self._get_or_create(user_key, current_time)
            if record.stage is Stage.PROCESSING:
                return None
            updated = replace(
                record,
                stage=Stage.PROCESSING,
                selected_style=style,
                updated_at=current_time,
            )
            self._records[user_key] = updated
            return updated

    def prune_older_than(
        self, max_age: timedelta = DEFAULT_MAX_AGE, now: datetime | None = None
    ) -> int:
        """Remove records untouched for longer than max_age."""
        cutoff = (now or self.clock()) - max_age
        with self._lock:
            stale = [
                key
                for key, record in self._records.items()
                if record.updated_at < cutoff
            ]
            for key in stale:
                del self._records[key]
        return len(stale)

    def clear(self) -> None:
        """Drop every record."""
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _get_or_create(self, user_key: str, now: datetime) -> ConversationRecord:
        record = self._records.get(user_key)
        if record is None:
            record = ConversationRecord(
                user_key=user_key, stage=Stage.IDLE, updated_at=now
            )
            self._records[user_key] = record
        return record

    def _update(
        self, user_key: str, now: datetime | None, **changes: object
    ) -> ConversationRecord:
        current_time = now or self.clock()
        with self._lock:
            record = self._get_or_create(user_key, current_time)
            updated = replace(record, updated_at=current_time, **changes)
            self._records[user_key] = updated
            return updated
