"""Outbound actions handed to the messaging transport."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class QuickReply:
    """A tappable quick-reply button."""

    title: str
    payload: str


@dataclass(frozen=True)
class SendText:
    """Send a plain text message."""

    recipient_id: str
    text: str


@dataclass(frozen=True)
class SendQuickReplies:
    """Send a text message with quick-reply buttons."""

    recipient_id: str
    text: str
    replies: list[QuickReply] = field(default_factory=list)


@dataclass(frozen=True)
class SendImage:
    """Send an image attachment by URL."""

    recipient_id: str
    url: str


OutboundAction = SendText | SendQuickReplies | SendImage
