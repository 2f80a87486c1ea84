"""Image generation pipeline: download, verify, call provider, persist."""

import asyncio
import base64
import binascii
import hashlib
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from leaderbot.app_logging import log_event
from leaderbot.domain.clock import Clock, utc_now
from leaderbot.domain.generation import (
    GenerationError,
    GenerationErrorKind,
    GenerationMetrics,
    GenerationProof,
    GenerationResult,
    ProviderImage,
)
from leaderbot.domain.styles import StyleConfig, build_prompt, parse_style
from leaderbot.services.privacy import to_log_user

logger = logging.getLogger(__name__)

MIN_SOURCE_IMAGE_BYTES = 5 * 1024
DEFAULT_GENERATION_TIMEOUT_SECONDS = 60.0
DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = 10.0
TRANSIENT_STATUS_CODES = frozenset({408, 429})
GENERATED_PREFIX = "generated"

IMAGE_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}


class ImageProvider(Protocol):
    """Interface for the external image-to-image provider."""

    async def edit_image(
        self, *, image_bytes: bytes, content_type: str, prompt: str
    ) -> dict[str, object]:
        """Return the raw provider response payload."""


class ArtifactStore(Protocol):
    """Persistence interface for generated images."""

    def save(self, path: str, data: bytes, content_type: str) -> int:
        """Store bytes under a relative path and return the bytes written."""


class ImageGenerator(Protocol):
    """Interface used by the orchestrator to produce styled images."""

    async def generate(
        self, style: str | None, source_image_url: str | None, user_key: str
    ) -> GenerationResult:
        """Generate an image or raise GenerationError."""


@dataclass
class _Attempt:
    """Mutable bookkeeping for one generation attempt."""

    user_log_id: str
    style: str | None
    started: float = field(default_factory=time.perf_counter)
    metrics: GenerationMetrics = field(default_factory=GenerationMetrics)
    incoming_byte_len: int = 0
    incoming_hash: str | None = None
    pipeline_input_hash: str | None = None

    def proof(
        self,
        ok: bool,
        output_url: str | None = None,
        error_kind: GenerationErrorKind | None = None,
    ) -> GenerationProof:
        self.metrics.total_ms = _elapsed_ms(self.started)
        return GenerationProof(
            user_log_id=self.user_log_id,
            style=self.style,
            incoming_byte_len=self.incoming_byte_len,
            incoming_hash=self.incoming_hash,
            pipeline_input_hash=self.pipeline_input_hash,
            metrics=self.metrics,
            ok=ok,
            output_url=output_url,
            error_kind=error_kind,
        )


@dataclass
class GenerationPipeline:
    """Generate a styled image from a user's source photo."""

    http_client: httpx.AsyncClient
    provider: ImageProvider | None
    artifact_store: ArtifactStore
    base_url: str | None
    generation_timeout_seconds: float = DEFAULT_GENERATION_TIMEOUT_SECONDS
    download_timeout_seconds: float = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS
    min_source_bytes: int = MIN_SOURCE_IMAGE_BYTES
    clock: Clock = utc_now

    async def generate(
        self, style: str | None, source_image_url: str | None, user_key: str
    ) -> GenerationResult:
        """Run the full pipeline and log a proof record for the attempt."""
        attempt = _Attempt(user_log_id=to_log_user(user_key), style=style)
        try:
            image_url = await self._run(attempt, style, source_image_url)
        except GenerationError as exc:
            proof = attempt.proof(ok=False, error_kind=exc.kind)
            exc.metrics = attempt.metrics
            exc.proof = proof
            log_event(
                logger, "generation_proof", logging.WARNING, **proof.as_log_fields()
            )
            raise
        proof = attempt.proof(ok=True, output_url=image_url)
        log_event(logger, "generation_proof", **proof.as_log_fields())
        return GenerationResult(image_url=image_url, proof=proof, metrics=proof.metrics)

    async def _run(
        self, attempt: _Attempt, style: str | None, source_image_url: str | None
    ) -> str:
        config = _require_style(style)
        if not source_image_url:
            raise GenerationError(
                GenerationErrorKind.MISSING_INPUT_IMAGE, "No source image URL"
            )
        if self.provider is None:
            raise GenerationError(
                GenerationErrorKind.MISSING_PROVIDER_CREDENTIAL,
                "Image provider is not configured",
            )
        provider = self.provider

        fetch_started = time.perf_counter()
        try:
            source = await self._download_source(source_image_url)
        finally:
            attempt.metrics.fetch_ms = _elapsed_ms(fetch_started)
        attempt.incoming_byte_len = len(source)
        attempt.incoming_hash = sha256_hex(source)
        if len(source) < self.min_source_bytes:
            raise GenerationError(
                GenerationErrorKind.MISSING_INPUT_IMAGE,
                f"Source image too small ({len(source)} bytes)",
            )

        pipeline_input = source
        attempt.pipeline_input_hash = sha256_hex(pipeline_input)
        if attempt.pipeline_input_hash != attempt.incoming_hash:
            logger.warning(
                "Provider input differs from downloaded source for user %s",
                attempt.user_log_id,
            )

        provider_started = time.perf_counter()
        try:
            output = await self._call_provider(provider, config, pipeline_input)
        finally:
            attempt.metrics.provider_ms = _elapsed_ms(provider_started)

        persist_started = time.perf_counter()
        try:
            return await self._persist(output)
        finally:
            attempt.metrics.persist_ms = _elapsed_ms(persist_started)

    async def _download_source(self, url: str) -> bytes:
        """Download the source photo, retrying once on transient failures."""
        failure = "Source image download failed"
        for attempt_number in (1, 2):
            if attempt_number > 1:
                logger.warning("Retrying source image download after %s", failure)
            try:
                response = await self.http_client.get(
                    url, timeout=self.download_timeout_seconds, follow_redirects=True
                )
            except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError) as exc:
                raise GenerationError(
                    GenerationErrorKind.MISSING_INPUT_IMAGE,
                    f"Invalid source image URL: {type(exc).__name__}",
                ) from exc
            except httpx.TransportError as exc:
                failure = (
                    f"Network error downloading source image: {type(exc).__name__}"
                )
                continue
            if _is_transient_status(response.status_code):
                failure = f"HTTP {response.status_code} downloading source image"
                continue
            if not response.is_success:
                raise GenerationError(
                    GenerationErrorKind.MISSING_INPUT_IMAGE,
                    f"HTTP {response.status_code} downloading source image",
                )
            return response.content
        raise GenerationError(GenerationErrorKind.MISSING_INPUT_IMAGE, failure)

    async def _call_provider(
        self, provider: ImageProvider, config: StyleConfig, image_bytes: bytes
    ) -> bytes:
        """Call the provider under the absolute timeout and return image bytes."""
        try:
            payload = await asyncio.wait_for(
                provider.edit_image(
                    image_bytes=image_bytes,
                    content_type=detect_mime_type(image_bytes),
                    prompt=build_prompt(config),
                ),
                timeout=self.generation_timeout_seconds,
            )
        except TimeoutError as exc:
            raise GenerationError(
                GenerationErrorKind.GENERATION_TIMEOUT,
                f"Provider call exceeded {self.generation_timeout_seconds:g}s",
            ) from exc
        except GenerationError:
            raise
        except Exception as exc:
            logger.exception("Image provider call failed")
            raise GenerationError(
                GenerationErrorKind.PROVIDER_ERROR,
                f"Provider call failed: {type(exc).__name__}",
            ) from exc

        image = parse_provider_payload(payload)
        if image.data is not None:
            return image.data
        if image.url is None:
            raise GenerationError(
                GenerationErrorKind.PROVIDER_ERROR, "Provider response has no image"
            )
        try:
            response = await self.http_client.get(
                image.url, timeout=self.download_timeout_seconds, follow_redirects=True
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise GenerationError(
                GenerationErrorKind.PROVIDER_ERROR,
                f"Could not fetch provider result: {type(exc).__name__}",
            ) from exc
        return response.content

    async def _persist(self, data: bytes) -> str:
        """Store generated bytes and return their public URL."""
        if not self.base_url:
            raise GenerationError(
                GenerationErrorKind.MISSING_BASE_URL, "No public base URL configured"
            )
        if not data:
            raise GenerationError(
                GenerationErrorKind.PROVIDER_ERROR, "Provider returned an empty image"
            )
        content_type = detect_mime_type(data)
        path = artifact_path(self.clock().timestamp(), content_type)
        try:
            written = await asyncio.to_thread(
                self.artifact_store.save, path, data, content_type
            )
        except Exception as exc:
            logger.exception("Failed to persist generated image")
            raise GenerationError(
                GenerationErrorKind.PROVIDER_ERROR,
                f"Could not persist generated image: {type(exc).__name__}",
            ) from exc
        if written <= 0:
            raise GenerationError(
                GenerationErrorKind.PROVIDER_ERROR, "Persisted artifact is empty"
            )
        return f"{self.base_url}/{path}"


@dataclass
class MockImageGenerator:
    """Generator that returns the style's demo image without calling a provider."""

    base_url: str | None

    async def generate(
        self, style: str | None, source_image_url: str | None, user_key: str
    ) -> GenerationResult:
        """Return the demo image URL for the requested style."""
        attempt = _Attempt(user_log_id=to_log_user(user_key), style=style)
        try:
            config = _require_style(style)
            if not source_image_url:
                raise GenerationError(
                    GenerationErrorKind.MISSING_INPUT_IMAGE, "No source image URL"
                )
            if not self.base_url:
                raise GenerationError(
                    GenerationErrorKind.MISSING_BASE_URL,
                    "No public base URL configured",
                )
        except GenerationError as exc:
            exc.proof = attempt.proof(ok=False, error_kind=exc.kind)
            exc.metrics = attempt.metrics
            log_event(
                logger,
                "generation_proof",
                logging.WARNING,
                **exc.proof.as_log_fields(),
            )
            raise
        image_url = f"{self.base_url}/demo/{config.demo_file}"
        proof = attempt.proof(ok=True, output_url=image_url)
        log_event(logger, "generation_proof", **proof.as_log_fields())
        return GenerationResult(image_url=image_url, proof=proof, metrics=proof.metrics)


def parse_provider_payload(payload: object) -> ProviderImage:
    """Extract inline base64 bytes or a URL from a provider response."""
    candidates: list[object] = []
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list) and data:
            candidates.append(data[0])
        candidates.append(payload)
    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        encoded = candidate.get("b64_json")
        if isinstance(encoded, str) and encoded:
            try:
                return ProviderImage(data=base64.b64decode(encoded, validate=True))
            except (binascii.Error, ValueError) as exc:
                raise GenerationError(
                    GenerationErrorKind.PROVIDER_ERROR,
                    "Provider returned invalid base64 image data",
                ) from exc
        url = candidate.get("url")
        if isinstance(url, str) and url.startswith(("http://", "https://")):
            return ProviderImage(url=url)
    raise GenerationError(
        GenerationErrorKind.PROVIDER_ERROR, "Provider response has no image"
    )


def artifact_path(timestamp: float, content_type: str) -> str:
    """Build a collision-resistant artifact path under generated/."""
    extension = IMAGE_EXTENSIONS.get(content_type, "jpg")
    name = f"{int(timestamp * 1000)}-{secrets.token_hex(6)}"
    return f"{GENERATED_PREFIX}/{name}.{extension}"


def sha256_hex(data: bytes) -> str:
    """Return the hex SHA-256 digest of bytes."""
    return hashlib.sha256(data).hexdigest()


def detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def _require_style(style: str | None) -> StyleConfig:
    config = parse_style(style)
    if config is None:
        raise GenerationError(
            GenerationErrorKind.INVALID_INPUT, f"Unknown or missing style: {style!r}"
        )
    return config


def _is_transient_status(status_code: int) -> bool:
    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
