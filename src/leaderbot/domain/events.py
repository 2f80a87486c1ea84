"""Normalized inbound conversation events."""

from dataclasses import dataclass
from enum import StrEnum


class EventKind(StrEnum):
    """Kinds of events the orchestrator understands."""

    PHOTO = "photo"
    STYLE = "style"
    CONTROL = "control"
    TEXT = "text"
    ACK = "ack"


class ControlAction(StrEnum):
    """Control requests, keyed by their quick-reply payload."""

    HELP = "WHAT_IS_THIS"
    PRIVACY = "PRIVACY_INFO"
    RETRY = "RETRY_STYLE"
    CHOOSE_STYLE = "CHOOSE_STYLE"
    DOWNLOAD = "DOWNLOAD_HD"
    GET_STARTED = "GET_STARTED"
    ABOUT = "ABOUT_LEADERBOT"


@dataclass(frozen=True)
class InboundEvent:
    """A single user event after payload parsing."""

    sender_id: str
    kind: EventKind
    photo_url: str | None = None
    style: str | None = None
    control: ControlAction | None = None
    text: str | None = None
    ack: str | None = None
    locale: str | None = None
