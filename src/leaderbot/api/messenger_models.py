"""Pydantic models for Messenger webhook events."""

from pydantic import BaseModel, ConfigDict, Field


class MessengerSender(BaseModel):
    """Messenger sender payload."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str | None = None
    locale: str | None = None


class MessengerAttachmentPayload(BaseModel):
    """Attachment payload with the media URL."""

    url: str | None = None


class MessengerAttachment(BaseModel):
    """Messenger attachment payload."""

    type: str | None = None
    payload: MessengerAttachmentPayload | None = None


class MessengerQuickReply(BaseModel):
    """Quick reply tapped by the user."""

    payload: str | None = None


class MessengerMessage(BaseModel):
    """Messenger message payload."""

    mid: str | None = None
    is_echo: bool = False
    text: str | None = None
    quick_reply: MessengerQuickReply | None = None
    attachments: list[MessengerAttachment] = Field(default_factory=list)

    def image_url(self) -> str | None:
        """Return the first image attachment URL, if any."""
        for attachment in self.attachments:
            if attachment.type == "image" and attachment.payload:
                if attachment.payload.url:
                    return attachment.payload.url
        return None


class MessengerReferral(BaseModel):
    """Referral attached to a postback (m.me links, ads)."""

    ref: str | None = None


class MessengerPostback(BaseModel):
    """Postback button payload."""

    mid: str | None = None
    title: str | None = None
    payload: str | None = None
    referral: MessengerReferral | None = None


class MessengerEvent(BaseModel):
    """A single entry of a webhook ``messaging`` array."""

    sender: MessengerSender | None = None
    timestamp: int | None = None
    message: MessengerMessage | None = None
    postback: MessengerPostback | None = None
    read: dict[str, object] | None = None
    delivery: dict[str, object] | None = None
