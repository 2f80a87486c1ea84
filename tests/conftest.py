"""Shared test fixtures."""

import asyncio
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from leaderbot.adapters.messenger_client import MessengerClient
from leaderbot.config import Settings
from leaderbot.containers import AppContainer
from leaderbot.domain.actions import QuickReply
from leaderbot.domain.generation import (
    GenerationError,
    GenerationMetrics,
    GenerationProof,
    GenerationResult,
)
from leaderbot.services.conversations import ConversationStore
from leaderbot.services.dedupe import TtlDedupeSet
from leaderbot.services.event_queue import EventQueue
from leaderbot.services.generation import ArtifactStore, ImageGenerator, ImageProvider
from leaderbot.services.orchestrator import ConversationOrchestrator
from leaderbot.services.privacy import PrivacyKeyDeriver
from leaderbot.services.quota import QuotaGate
from leaderbot.services.webhook import WebhookProcessor

JPEG_HEADER = b"\xff\xd8\xff\xe0"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"


def jpeg_bytes(size: int) -> bytes:
    """Return a fake JPEG payload of exactly ``size`` bytes."""
    return JPEG_HEADER + b"\x00" * max(0, size - len(JPEG_HEADER))


@dataclass
class FixedClock:
    """Manually advanced clock."""

    now: datetime = field(
        default_factory=lambda: datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class FakeMessengerClient(MessengerClient):
    """Fake Messenger client that records sent messages."""

    sent: list[tuple[str, str, object]] = field(default_factory=list)
    fail_on: set[str] = field(default_factory=set)

    async def send_text(self, recipient_id: str, text: str) -> None:
        self._record("text", recipient_id, text)

    async def send_quick_replies(
        self, recipient_id: str, text: str, replies: list[QuickReply]
    ) -> None:
        self._record("quick_replies", recipient_id, (text, replies))

    async def send_image(self, recipient_id: str, url: str) -> None:
        self._record("image", recipient_id, url)

    def _record(self, kind: str, recipient_id: str, payload: object) -> None:
        if kind in self.fail_on:
            raise RuntimeError(f"send {kind} failed")
        self.sent.append((kind, recipient_id, payload))


@dataclass
class FakeImageProvider(ImageProvider):
    """Fake provider returning a fixed payload or raising."""

    payload: dict[str, object] = field(default_factory=dict)
    error: Exception | None = None
    delay: float = 0.0
    calls: list[dict[str, object]] = field(default_factory=list)

    async def edit_image(
        self, *, image_bytes: bytes, content_type: str, prompt: str
    ) -> dict[str, object]:
        self.calls.append(
            {"image_bytes": image_bytes, "content_type": content_type, "prompt": prompt}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


@dataclass
class InMemoryArtifactStore(ArtifactStore):
    """Artifact store that keeps saved files in a dict."""

    files: dict[str, tuple[bytes, str]] = field(default_factory=dict)
    written: int | None = None

    def save(self, path: str, data: bytes, content_type: str) -> int:
        self.files[path] = (data, content_type)
        return len(data) if self.written is None else self.written


@dataclass
class FakeGenerator(ImageGenerator):
    """Generator that returns a fixed URL or raises a queued error.

    When ``gate`` is set, calls block until it is released.
    """

    image_url: str = "https://bot.example/generated/result.png"
    errors: list[GenerationError] = field(default_factory=list)
    gate: asyncio.Event | None = None
    calls: list[tuple[str | None, str | None, str]] = field(default_factory=list)

    async def generate(
        self, style: str | None, source_image_url: str | None, user_key: str
    ) -> GenerationResult:
        self.calls.append((style, source_image_url, user_key))
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        metrics = GenerationMetrics()
        proof = GenerationProof(
            user_log_id=user_key[:8],
            style=style,
            incoming_byte_len=0,
            incoming_hash=None,
            pipeline_input_hash=None,
            metrics=metrics,
            ok=True,
            output_url=self.image_url,
        )
        return GenerationResult(image_url=self.image_url, proof=proof, metrics=metrics)


def build_processor(
    generator: ImageGenerator,
    messenger_client: MessengerClient,
    clock: FixedClock,
    daily_limit: int = 1,
) -> WebhookProcessor:
    store = ConversationStore(clock=clock)
    orchestrator = ConversationOrchestrator(
        store=store,
        quota=QuotaGate(daily_limit=daily_limit),
        generator=generator,
        clock=clock,
    )
    return WebhookProcessor(
        dedupe=TtlDedupeSet(clock=clock),
        privacy=PrivacyKeyDeriver("test-pepper"),
        store=store,
        orchestrator=orchestrator,
        messenger_client=messenger_client,
        clock=clock,
    )


def message_event(
    sender_id: str = "psid-1",
    mid: str | None = "mid-1",
    text: str | None = None,
    image_url: str | None = None,
    timestamp: int | None = 1700000000000,
    **message_fields: object,
) -> dict[str, object]:
    message: dict[str, object] = {**message_fields}
    if mid is not None:
        message["mid"] = mid
    if text is not None:
        message["text"] = text
    if image_url is not None:
        message["attachments"] = [{"type": "image", "payload": {"url": image_url}}]
    event: dict[str, object] = {"sender": {"id": sender_id}, "message": message}
    if timestamp is not None:
        event["timestamp"] = timestamp
    return event


def webhook_payload(*events: dict[str, object]) -> dict[str, object]:
    return {"object": "page", "entry": [{"id": "page-1", "messaging": list(events)}]}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        privacy_pepper="test-pepper",
        fb_page_access_token="page-token",
        fb_verify_token="verify-token",
        fb_app_secret="app-secret",
        app_base_url="https://bot.example",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def messenger_client() -> FakeMessengerClient:
    return FakeMessengerClient()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def container(
    settings: Settings,
    clock: FixedClock,
    messenger_client: FakeMessengerClient,
    generator: FakeGenerator,
) -> AppContainer:
    processor = build_processor(generator, messenger_client, clock)

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        messenger_client=messenger_client,
        conversation_store=processor.store,
        quota=processor.orchestrator.quota,
        dedupe=processor.dedupe,
        generator=generator,
        orchestrator=processor.orchestrator,
        webhook_processor=processor,
        event_queue=EventQueue(handler=processor.process, maxsize=2, workers=1),
        close_resources=close_resources,
    )


@pytest.fixture
def leaderbot_logs(
    caplog: pytest.LogCaptureFixture,
) -> Iterator[pytest.LogCaptureFixture]:
    """Capture package records once, through the root handler only."""
    logger = logging.getLogger("leaderbot")
    previous_level = logger.level
    previous_propagate = logger.propagate
    logger.setLevel(logging.DEBUG)
    logger.propagate = True
    caplog.set_level(logging.DEBUG)
    yield caplog
    logger.setLevel(previous_level)
    logger.propagate = previous_propagate
