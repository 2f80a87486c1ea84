"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import httpx
from supabase import create_client

from leaderbot.adapters.local_artifact_store import LocalArtifactStore
from leaderbot.adapters.messenger_client import HttpxMessengerClient, MessengerClient
from leaderbot.adapters.openai_image_client import OpenAIImageClient
from leaderbot.adapters.supabase_artifact_store import (
    SupabaseArtifactStore,
    public_bucket_url,
)
from leaderbot.config import Settings, parse_base_url
from leaderbot.services.conversations import ConversationStore
from leaderbot.services.dedupe import TtlDedupeSet
from leaderbot.services.event_queue import EventQueue
from leaderbot.services.generation import (
    ArtifactStore,
    GenerationPipeline,
    ImageGenerator,
    MockImageGenerator,
)
from leaderbot.services.orchestrator import ConversationOrchestrator
from leaderbot.services.privacy import PrivacyKeyDeriver
from leaderbot.services.quota import QuotaGate
from leaderbot.services.webhook import WebhookProcessor


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    messenger_client: MessengerClient
    conversation_store: ConversationStore
    quota: QuotaGate
    dedupe: TtlDedupeSet
    generator: ImageGenerator
    orchestrator: ConversationOrchestrator
    webhook_processor: WebhookProcessor
    event_queue: EventQueue
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    privacy = PrivacyKeyDeriver(resolved_settings.privacy_pepper)
    store = ConversationStore()
    quota = QuotaGate(daily_limit=resolved_settings.daily_limit)
    dedupe = TtlDedupeSet(
        ttl_seconds=resolved_settings.dedupe_ttl_seconds,
        max_entries=resolved_settings.dedupe_max_entries,
    )
    http_client = httpx.AsyncClient()
    provider = (
        OpenAIImageClient.create(
            resolved_settings.openai_api_key, resolved_settings.openai_image_model
        )
        if resolved_settings.openai_api_key
        else None
    )
    generator = _build_generator(resolved_settings, http_client, provider)
    orchestrator = ConversationOrchestrator(
        store=store,
        quota=quota,
        generator=generator,
        privacy_policy_url=resolved_settings.privacy_policy_url,
    )
    messenger_client = HttpxMessengerClient.create(
        resolved_settings.fb_page_access_token
    )
    processor = WebhookProcessor(
        dedupe=dedupe,
        privacy=privacy,
        store=store,
        orchestrator=orchestrator,
        messenger_client=messenger_client,
        state_max_age=timedelta(days=resolved_settings.state_max_age_days),
    )
    event_queue = EventQueue(
        handler=processor.process,
        maxsize=resolved_settings.event_queue_size,
        workers=resolved_settings.event_workers,
    )

    async def close_resources() -> None:
        await messenger_client.close()
        await http_client.aclose()
        if provider is not None:
            await provider.close()

    return AppContainer(
        settings=resolved_settings,
        messenger_client=messenger_client,
        conversation_store=store,
        quota=quota,
        dedupe=dedupe,
        generator=generator,
        orchestrator=orchestrator,
        webhook_processor=processor,
        event_queue=event_queue,
        close_resources=close_resources,
    )


def _build_generator(
    settings: Settings,
    http_client: httpx.AsyncClient,
    provider: OpenAIImageClient | None,
) -> ImageGenerator:
    app_base_url = parse_base_url(settings.app_base_url)
    match settings.generator_mode.strip().lower():
        case "mock":
            return MockImageGenerator(base_url=app_base_url)
        case "openai":
            artifact_store, base_url = _build_artifact_store(settings, app_base_url)
            return GenerationPipeline(
                http_client=http_client,
                provider=provider,
                artifact_store=artifact_store,
                base_url=base_url,
                generation_timeout_seconds=settings.generation_timeout_seconds,
                download_timeout_seconds=settings.source_download_timeout_seconds,
                min_source_bytes=settings.min_source_image_bytes,
            )
        case other:
            raise ValueError(f"Unknown GENERATOR_MODE: {other!r}")


def _build_artifact_store(
    settings: Settings, app_base_url: str | None
) -> tuple[ArtifactStore, str | None]:
    """Return the artifact store and the public base URL its paths live under."""
    match settings.artifact_backend.strip().lower():
        case "local":
            return LocalArtifactStore(Path(settings.public_dir)), app_base_url
        case "supabase":
            if not settings.supabase_url or not settings.supabase_service_key:
                raise ValueError(
                    "SUPABASE_URL and SUPABASE_SERVICE_KEY are required "
                    "for ARTIFACT_BACKEND=supabase"
                )
            client = create_client(settings.supabase_url, settings.supabase_service_key)
            return (
                SupabaseArtifactStore(client, settings.supabase_bucket),
                public_bucket_url(settings.supabase_url, settings.supabase_bucket),
            )
        case other:
            raise ValueError(f"Unknown ARTIFACT_BACKEND: {other!r}")
