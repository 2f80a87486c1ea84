"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    privacy_pepper: str
    fb_page_access_token: str
    fb_verify_token: str
    fb_app_secret: str | None = None
    generator_mode: str = "mock"
    openai_api_key: str | None = None
    openai_image_model: str = "gpt-image-1"
    app_base_url: str | None = None
    artifact_backend: str = "local"
    public_dir: str = "public"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_bucket: str = "generated-images"
    generation_timeout_seconds: float = 60.0
    source_download_timeout_seconds: float = 10.0
    min_source_image_bytes: int = 5 * 1024
    daily_limit: int = 1
    dedupe_ttl_seconds: int = 10 * 60
    dedupe_max_entries: int = 5000
    state_max_age_days: int = 7
    event_queue_size: int = 1000
    event_workers: int = 4
    privacy_policy_url: str = "https://leaderbot.example/privacy"
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_base_url(raw: str | None) -> str | None:
    """Return a normalized http(s) base URL, or None when unusable."""
    if raw is None:
        return None
    cleaned = raw.strip().rstrip("/")
    if not cleaned.startswith(("http://", "https://")):
        return None
    return cleaned
