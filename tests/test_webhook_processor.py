"""Tests for webhook payload processing."""

import asyncio
import logging

import pytest

from leaderbot.api.messenger_models import MessengerEvent
from leaderbot.domain.conversation import Stage
from leaderbot.domain.events import ControlAction, EventKind
from leaderbot.services.privacy import PrivacyKeyDeriver
from leaderbot.services.webhook import (
    dedupe_key,
    detect_ack,
    normalize_event,
    summarize_webhook,
)
from leaderbot.texts import t
from tests.conftest import (
    FakeGenerator,
    FakeMessengerClient,
    FixedClock,
    build_processor,
    message_event,
    webhook_payload,
)

PHOTO_URL = "https://cdn.example/photo.jpg"


def _user_key(sender_id: str = "psid-1") -> str:
    return PrivacyKeyDeriver("test-pepper").to_user_key(sender_id)


def test_duplicate_delivery_is_processed_once(clock: FixedClock) -> None:
    messenger = FakeMessengerClient()
    generator = FakeGenerator()
    processor = build_processor(generator, messenger, clock)
    photo = message_event(mid="m-photo", image_url=PHOTO_URL)
    style = message_event(mid="m-style", text="gold")

    asyncio.run(processor.process(webhook_payload(photo, style)))
    sent_after_first = list(messenger.sent)
    record_after_first = processor.store.get(_user_key())
    clock.advance(minutes=5)
    asyncio.run(processor.process(webhook_payload(photo, style)))

    assert messenger.sent == sent_after_first
    assert len(generator.calls) == 1
    assert processor.store.get(_user_key()) == record_after_first
    assert record_after_first.stage is Stage.RESULT_READY


def test_duplicate_control_event_leaves_record_untouched(clock: FixedClock) -> None:
    messenger = FakeMessengerClient()
    processor = build_processor(FakeGenerator(), messenger, clock)
    photo = message_event(mid="m-photo", image_url=PHOTO_URL)
    choose = message_event(mid="m-choose", text="andere stijl")

    asyncio.run(processor.process(webhook_payload(photo, choose)))
    record_after_first = processor.store.get(_user_key())
    sent_count = len(messenger.sent)
    clock.advance(seconds=30)
    asyncio.run(processor.process(webhook_payload(choose)))

    assert processor.store.get(_user_key()) == record_after_first
    assert processor.store.get(_user_key()).updated_at == record_after_first.updated_at
    assert len(messenger.sent) == sent_count


def test_events_are_keyed_by_hmac_not_platform_id(clock: FixedClock) -> None:
    messenger = FakeMessengerClient()
    processor = build_processor(FakeGenerator(), messenger, clock)

    asyncio.run(processor.process(webhook_payload(message_event(text="hallo"))))

    assert processor.store.get("psid-1") is None
    assert processor.store.get(_user_key()) is not None
    assert messenger.sent[0][1] == "psid-1"


def test_echo_and_receipts_are_ignored(clock: FixedClock) -> None:
    messenger = FakeMessengerClient()
    processor = build_processor(FakeGenerator(), messenger, clock)
    echo = message_event(text="bot said this", is_echo=True)
    read = {"sender": {"id": "psid-1"}, "timestamp": 1, "read": {"watermark": 1}}
    delivery = {"sender": {"id": "psid-1"}, "delivery": {"mids": ["m"]}}

    asyncio.run(processor.process(webhook_payload(echo, read, delivery)))

    assert messenger.sent == []
    assert len(processor.store) == 0


def test_malformed_events_are_skipped(clock: FixedClock) -> None:
    messenger = FakeMessengerClient()
    processor = build_processor(FakeGenerator(), messenger, clock)
    broken = {"sender": {"id": "psid-1"}, "message": "not-an-object"}

    asyncio.run(
        processor.process(webhook_payload(broken, "junk", message_event(text="hi")))
    )

    assert len(messenger.sent) == 1


def test_events_without_sender_are_skipped(clock: FixedClock) -> None:
    messenger = FakeMessengerClient()
    processor = build_processor(FakeGenerator(), messenger, clock)

    asyncio.run(processor.process(webhook_payload({"message": {"text": "hi"}})))

    assert messenger.sent == []


def test_failed_send_does_not_stop_remaining_actions(clock: FixedClock) -> None:
    messenger = FakeMessengerClient(fail_on={"text"})
    generator = FakeGenerator()
    processor = build_processor(generator, messenger, clock)

    asyncio.run(
        processor.process(
            webhook_payload(
                message_event(mid="m1", image_url=PHOTO_URL),
                message_event(mid="m2", text="gold"),
            )
        )
    )

    kinds = [kind for kind, _, _ in messenger.sent]
    assert kinds == ["quick_replies", "image", "quick_replies"]


def test_ack_is_not_answered(
    clock: FixedClock, leaderbot_logs: pytest.LogCaptureFixture
) -> None:
    messenger = FakeMessengerClient()
    processor = build_processor(FakeGenerator(), messenger, clock)

    asyncio.run(processor.process(webhook_payload(message_event(text="👍"))))

    assert messenger.sent == []
    assert any(
        "ack_ignored" in record.getMessage() for record in leaderbot_logs.records
    )


def test_summary_log_omits_ids_and_text(
    clock: FixedClock, leaderbot_logs: pytest.LogCaptureFixture
) -> None:
    processor = build_processor(FakeGenerator(), FakeMessengerClient(), clock)

    asyncio.run(
        processor.process(
            webhook_payload(message_event(sender_id="9988776655", text="secret"))
        )
    )

    summaries = [
        record
        for record in leaderbot_logs.records
        if record.getMessage().startswith("webhook_summary")
    ]
    [summary] = summaries
    assert summary.levelno == logging.DEBUG
    assert "9988776655" not in summary.getMessage()
    assert "secret" not in summary.getMessage()


def test_summarize_webhook_shapes() -> None:
    payload = webhook_payload(
        message_event(text="hi", image_url=PHOTO_URL),
        {"sender": {"id": "x"}, "read": {"watermark": 1}},
        {"sender": {"id": "x"}, "postback": {"payload": "GET_STARTED"}},
    )

    summary = summarize_webhook(payload)

    assert summary["object"] == "page"
    assert summary["entryCount"] == 1
    assert summary["events"] == [
        {
            "type": "message",
            "hasText": True,
            "attachmentTypes": ["image"],
            "isEcho": False,
            "hasRead": False,
            "hasDelivery": False,
            "hasPostback": False,
        },
        {
            "type": "read",
            "hasText": False,
            "attachmentTypes": [],
            "isEcho": False,
            "hasRead": True,
            "hasDelivery": False,
            "hasPostback": False,
        },
        {
            "type": "postback",
            "hasText": False,
            "attachmentTypes": [],
            "isEcho": False,
            "hasRead": False,
            "hasDelivery": False,
            "hasPostback": True,
        },
    ]


@pytest.mark.parametrize(
    "payload", [None, [], "text", {"entry": "nope"}, {"entry": [1]}]
)
def test_summarize_webhook_tolerates_malformed_payloads(payload: object) -> None:
    summary = summarize_webhook(payload)

    assert summary["events"] == []


def test_dedupe_key_prefers_mid() -> None:
    with_mid = MessengerEvent.model_validate(message_event(mid="m-1"))
    postback = MessengerEvent.model_validate(
        {"sender": {"id": "1"}, "timestamp": 5, "postback": {"mid": "p-1"}}
    )
    fallback = MessengerEvent.model_validate(message_event(mid=None, timestamp=42))
    neither = MessengerEvent.model_validate(message_event(mid=None, timestamp=None))

    assert dedupe_key(with_mid, "user") == "mid:m-1"
    assert dedupe_key(postback, "user") == "mid:p-1"
    assert dedupe_key(fallback, "user") == "ts:user:42"
    assert dedupe_key(neither, "user") is None


def test_fallback_key_dedupes_retries_without_mid(clock: FixedClock) -> None:
    messenger = FakeMessengerClient()
    processor = build_processor(FakeGenerator(), messenger, clock)
    event = message_event(mid=None, text="hallo", timestamp=42)

    asyncio.run(processor.process(webhook_payload(event)))
    asyncio.run(processor.process(webhook_payload(event)))

    assert len(messenger.sent) == 1


def test_events_without_any_key_are_processed_every_time(clock: FixedClock) -> None:
    messenger = FakeMessengerClient()
    processor = build_processor(FakeGenerator(), messenger, clock)
    event = message_event(mid=None, text="hallo", timestamp=None)

    asyncio.run(processor.process(webhook_payload(event)))
    asyncio.run(processor.process(webhook_payload(event)))

    assert len(messenger.sent) == 2


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("(y)", "like"),
        ("ok", "ok"),
        ("Jep", "ok"),
        ("Merci!", "thanks"),
        ("👍", "emoji"),
        ("❤️ 👍", "emoji"),
        ("  ", None),
        ("disco", None),
        ("hoe werkt dit", None),
    ],
)
def test_detect_ack(text: str, expected: str | None) -> None:
    assert detect_ack(text) == expected


def _normalize(raw: dict[str, object]):
    return normalize_event(MessengerEvent.model_validate(raw))


def test_normalize_event_kinds() -> None:
    photo = _normalize(message_event(image_url=PHOTO_URL))
    style_reply = _normalize(message_event(quick_reply={"payload": "STYLE_GOLD"}))
    legacy = _normalize(message_event(quick_reply={"payload": "NEW_STYLE"}))
    postback = _normalize(
        {"sender": {"id": "1"}, "postback": {"payload": "GET_STARTED"}}
    )
    typed_style = _normalize(message_event(text="Disco Glow"))
    command = _normalize(message_event(text="Privacy?"))
    sticker = _normalize(
        message_event(attachments=[{"type": "audio", "payload": {"url": PHOTO_URL}}])
    )

    assert photo.kind is EventKind.PHOTO
    assert photo.photo_url == PHOTO_URL
    assert style_reply.kind is EventKind.STYLE
    assert style_reply.style == "STYLE_GOLD"
    assert legacy.control is ControlAction.CHOOSE_STYLE
    assert postback.control is ControlAction.GET_STARTED
    assert typed_style.kind is EventKind.STYLE
    assert command.control is ControlAction.PRIVACY
    assert sticker.kind is EventKind.TEXT


def test_normalize_event_keeps_locale_and_numeric_ids() -> None:
    event = _normalize(
        {"sender": {"id": 12345, "locale": "en_US"}, "message": {"text": "hi"}}
    )

    assert event.sender_id == "12345"
    assert event.locale == "en_US"


def test_unknown_text_gets_stage_reply(clock: FixedClock) -> None:
    messenger = FakeMessengerClient()
    processor = build_processor(FakeGenerator(), messenger, clock)

    asyncio.run(processor.process(webhook_payload(message_event(text="hoi"))))

    kind, _, (text, _) = messenger.sent[0]
    assert kind == "quick_replies"
    assert text == t("nl", "flow_explanation")
