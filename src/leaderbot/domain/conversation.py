"""Domain models for per-user conversations."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class Stage(StrEnum):
    """Conversation stages of the styling flow."""

    IDLE = "IDLE"
    AWAITING_PHOTO = "AWAITING_PHOTO"
    AWAITING_STYLE = "AWAITING_STYLE"
    PROCESSING = "PROCESSING"
    RESULT_READY = "RESULT_READY"
    FAILURE = "FAILURE"


@dataclass(frozen=True)
class ConversationRecord:
    """Snapshot of one user's conversation."""

    user_key: str
    stage: Stage
    updated_at: datetime
    last_photo_url: str | None = None
    selected_style: str | None = None
    preferred_lang: str | None = None
    last_generated_url: str | None = None
