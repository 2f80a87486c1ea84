"""Webhook payload processing: filter, dedupe, key, orchestrate, dispatch."""

import logging
import unicodedata
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import timedelta

from pydantic import ValidationError

from leaderbot.adapters.messenger_client import MessengerClient
from leaderbot.api.messenger_models import MessengerEvent
from leaderbot.app_logging import log_event
from leaderbot.domain.actions import (
    OutboundAction,
    SendImage,
    SendQuickReplies,
    SendText,
)
from leaderbot.domain.clock import Clock, utc_now
from leaderbot.domain.events import ControlAction, EventKind, InboundEvent
from leaderbot.domain.styles import parse_style
from leaderbot.services.conversations import DEFAULT_MAX_AGE, ConversationStore
from leaderbot.services.dedupe import TtlDedupeSet
from leaderbot.services.orchestrator import ConversationOrchestrator
from leaderbot.services.privacy import PrivacyKeyDeriver, to_log_user

logger = logging.getLogger(__name__)

_LEGACY_PAYLOADS = {
    "NEW_STYLE": ControlAction.CHOOSE_STYLE,
    "VARIATION": ControlAction.RETRY,
    "STRONGER": ControlAction.RETRY,
    "SEND_PHOTO": ControlAction.HELP,
    "TRENDING": ControlAction.CHOOSE_STYLE,
}

_TEXT_COMMANDS = {
    "help": ControlAction.HELP,
    "hulp": ControlAction.HELP,
    "info": ControlAction.HELP,
    "menu": ControlAction.HELP,
    "start": ControlAction.GET_STARTED,
    "privacy": ControlAction.PRIVACY,
    "retry": ControlAction.RETRY,
    "opnieuw": ControlAction.RETRY,
    "probeer opnieuw": ControlAction.RETRY,
    "andere stijl": ControlAction.CHOOSE_STYLE,
    "nieuwe stijl": ControlAction.CHOOSE_STYLE,
    "other style": ControlAction.CHOOSE_STYLE,
    "new style": ControlAction.CHOOSE_STYLE,
    "download": ControlAction.DOWNLOAD,
    "hd": ControlAction.DOWNLOAD,
    "wie ben je": ControlAction.ABOUT,
    "about": ControlAction.ABOUT,
}

_ACK_LIKE = {"(y)", "(Y)"}
_ACK_OK = {
    "ok",
    "oke",
    "oké",
    "okay",
    "okido",
    "jep",
    "ja",
    "yes",
    "yep",
    "top",
    "cool",
}
_ACK_THANKS = {"merci", "dank je", "dankje", "dankjewel", "bedankt", "thanks", "thx"}


def detect_ack(text: str | None) -> str | None:
    """Classify short acknowledgements that need no reply."""
    if text is None:
        return None
    stripped = text.strip()
    if not stripped:
        return None
    if stripped in _ACK_LIKE:
        return "like"
    lowered = stripped.lower().rstrip("!.")
    if lowered in _ACK_OK:
        return "ok"
    if lowered in _ACK_THANKS:
        return "thanks"
    if all(_is_emoji_char(char) for char in stripped if not char.isspace()):
        return "emoji"
    return None


def _is_emoji_char(char: str) -> bool:
    if char in {"\ufe0f", "\u200d"}:
        return True
    return unicodedata.category(char) == "So" or 0x1F300 <= ord(char) <= 0x1FAFF


def normalize_event(event: MessengerEvent) -> InboundEvent | None:
    """Turn a raw messaging event into an orchestrator event.

    Returns None for events without a sender, echoes and read or delivery
    receipts.
    """
    sender_id = event.sender.id if event.sender else None
    if not sender_id:
        return None
    locale = event.sender.locale if event.sender else None

    if event.postback is not None:
        inbound = _from_payload(sender_id, event.postback.payload, locale)
        referral = event.postback.referral
        if inbound.kind is EventKind.TEXT and referral and parse_style(referral.ref):
            return InboundEvent(
                sender_id, EventKind.STYLE, style=referral.ref, locale=locale
            )
        return inbound

    message = event.message
    if message is None or message.is_echo:
        return None
    if message.quick_reply and message.quick_reply.payload:
        return _from_payload(sender_id, message.quick_reply.payload, locale)
    photo_url = message.image_url()
    if photo_url:
        return InboundEvent(
            sender_id, EventKind.PHOTO, photo_url=photo_url, locale=locale
        )
    if message.text and message.text.strip():
        return _from_text(sender_id, message.text, locale)
    return InboundEvent(sender_id, EventKind.TEXT, locale=locale)


def _from_payload(
    sender_id: str, payload: str | None, locale: str | None
) -> InboundEvent:
    value = (payload or "").strip()
    if value in {action.value for action in ControlAction}:
        return InboundEvent(
            sender_id, EventKind.CONTROL, control=ControlAction(value), locale=locale
        )
    if value in _LEGACY_PAYLOADS:
        return InboundEvent(
            sender_id, EventKind.CONTROL, control=_LEGACY_PAYLOADS[value], locale=locale
        )
    if parse_style(value):
        return InboundEvent(sender_id, EventKind.STYLE, style=value, locale=locale)
    return InboundEvent(sender_id, EventKind.TEXT, text=value or None, locale=locale)


def _from_text(sender_id: str, text: str, locale: str | None) -> InboundEvent:
    if parse_style(text):
        return InboundEvent(
            sender_id, EventKind.STYLE, style=text.strip(), locale=locale
        )
    command = _TEXT_COMMANDS.get(text.strip().lower().rstrip("?!."))
    if command is not None:
        return InboundEvent(
            sender_id, EventKind.CONTROL, control=command, locale=locale
        )
    ack = detect_ack(text)
    if ack is not None:
        return InboundEvent(sender_id, EventKind.ACK, ack=ack, locale=locale)
    return InboundEvent(sender_id, EventKind.TEXT, text=text, locale=locale)


def dedupe_key(event: MessengerEvent, user_key: str) -> str | None:
    """Return the dedupe key for an event.

    The platform message id is used when present. Otherwise the user key and
    event timestamp form a fallback key, which can collide for distinct events
    sharing a timestamp and cannot catch duplicates that lack one.
    """
    if event.message and event.message.mid:
        return f"mid:{event.message.mid}"
    if event.postback and event.postback.mid:
        return f"mid:{event.postback.mid}"
    if event.timestamp is not None:
        return f"ts:{user_key}:{event.timestamp}"
    return None


def iter_raw_events(payload: object) -> Iterator[object]:
    """Yield every raw messaging event in a webhook payload."""
    if not isinstance(payload, dict):
        return
    entries = payload.get("entry")
    if not isinstance(entries, list):
        return
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        messaging = entry.get("messaging")
        if isinstance(messaging, list):
            yield from messaging


def summarize_webhook(payload: object) -> dict[str, object]:
    """Describe a payload's event shapes without ids or message contents."""
    events: list[dict[str, object]] = []
    for raw in iter_raw_events(payload):
        event = raw if isinstance(raw, dict) else {}
        message = event.get("message")
        message = message if isinstance(message, dict) else {}
        attachments = message.get("attachments")
        attachment_types = [
            attachment["type"]
            for attachment in (attachments if isinstance(attachments, list) else [])
            if isinstance(attachment, dict) and isinstance(attachment.get("type"), str)
        ]
        events.append(
            {
                "type": _event_type(event),
                "hasText": isinstance(message.get("text"), str),
                "attachmentTypes": attachment_types,
                "isEcho": message.get("is_echo") is True,
                "hasRead": "read" in event,
                "hasDelivery": "delivery" in event,
                "hasPostback": "postback" in event,
            }
        )
    entries = payload.get("entry") if isinstance(payload, dict) else None
    return {
        "object": payload.get("object") if isinstance(payload, dict) else None,
        "entryCount": len(entries) if isinstance(entries, list) else 0,
        "events": events,
    }


def _event_type(event: dict[str, object]) -> str:
    for event_type in ("message", "postback", "read", "delivery"):
        if event_type in event:
            return event_type
    return "unknown"


@dataclass
class WebhookProcessor:
    """Process webhook payloads off the request path."""

    dedupe: TtlDedupeSet
    privacy: PrivacyKeyDeriver
    store: ConversationStore
    orchestrator: ConversationOrchestrator
    messenger_client: MessengerClient
    clock: Clock = utc_now
    state_max_age: timedelta = DEFAULT_MAX_AGE

    async def process(self, payload: object) -> None:
        """Handle every messaging event in a payload, in order."""
        log_event(
            logger, "webhook_summary", logging.DEBUG, **summarize_webhook(payload)
        )
        now = self.clock()
        pruned = self.store.prune_older_than(self.state_max_age, now)
        if pruned:
            logger.info("Pruned %s idle conversations", pruned)
        expired = self.orchestrator.quota.prune_before(now)
        if expired:
            logger.debug("Dropped %s quota records from earlier days", expired)
        for raw_event in iter_raw_events(payload):
            await self.process_event(raw_event)

    async def process_event(self, raw_event: object) -> list[OutboundAction]:
        """Handle one messaging event and dispatch its outbound actions."""
        try:
            event = MessengerEvent.model_validate(raw_event)
        except ValidationError:
            logger.warning("Skipping malformed messaging event")
            return []
        if event.message is not None and event.message.is_echo:
            return []
        inbound = normalize_event(event)
        if inbound is None:
            return []
        user_key = self.privacy.to_user_key(inbound.sender_id)
        key = dedupe_key(event, user_key)
        if key is None:
            logger.warning(
                "Event without mid or timestamp for user %s", to_log_user(user_key)
            )
        elif self.dedupe.seen(key, self.clock()):
            log_event(logger, "event_duplicate", user=to_log_user(user_key))
            return []
        actions = await self.orchestrator.handle(inbound, user_key)
        await self.dispatch(actions)
        return actions

    async def dispatch(self, actions: list[OutboundAction]) -> None:
        """Send actions in order; a failed send does not stop the rest."""
        for action in actions:
            try:
                match action:
                    case SendText(recipient_id=recipient, text=text):
                        await self.messenger_client.send_text(recipient, text)
                    case SendQuickReplies(
                        recipient_id=recipient, text=text, replies=replies
                    ):
                        await self.messenger_client.send_quick_replies(
                            recipient, text, replies
                        )
                    case SendImage(recipient_id=recipient, url=url):
                        await self.messenger_client.send_image(recipient, url)
            except Exception:
                logger.exception("Failed to send %s", type(action).__name__)
