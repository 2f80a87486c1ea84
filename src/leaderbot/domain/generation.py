"""Domain models for image generation attempts."""

from dataclasses import dataclass
from enum import StrEnum


class GenerationErrorKind(StrEnum):
    """Closed set of generation failure kinds."""

    INVALID_INPUT = "InvalidInput"
    MISSING_INPUT_IMAGE = "MissingInputImage"
    MISSING_PROVIDER_CREDENTIAL = "MissingProviderCredential"
    MISSING_BASE_URL = "MissingBaseUrl"
    GENERATION_TIMEOUT = "GenerationTimeout"
    PROVIDER_ERROR = "ProviderError"


@dataclass
class GenerationMetrics:
    """Per-stage timings in milliseconds."""

    fetch_ms: float = 0.0
    provider_ms: float = 0.0
    persist_ms: float = 0.0
    total_ms: float = 0.0


@dataclass(frozen=True)
class GenerationProof:
    """Audit record of the bytes one generation attempt processed."""

    user_log_id: str
    style: str | None
    incoming_byte_len: int
    incoming_hash: str | None
    pipeline_input_hash: str | None
    metrics: GenerationMetrics
    ok: bool
    output_url: str | None = None
    error_kind: GenerationErrorKind | None = None

    @property
    def input_matches(self) -> bool:
        """Return true when the provider received the downloaded bytes."""
        return self.incoming_hash == self.pipeline_input_hash

    def as_log_fields(self) -> dict[str, object]:
        """Flatten the proof for a structured audit log line."""
        return {
            "user": self.user_log_id,
            "style": self.style,
            "ok": self.ok,
            "errorKind": str(self.error_kind) if self.error_kind else None,
            "incomingByteLen": self.incoming_byte_len,
            "incomingHash": self.incoming_hash,
            "pipelineInputHash": self.pipeline_input_hash,
            "inputMatches": self.input_matches,
            "outputUrl": self.output_url,
            "fetchMs": round(self.metrics.fetch_ms, 1),
            "providerMs": round(self.metrics.provider_ms, 1),
            "persistMs": round(self.metrics.persist_ms, 1),
            "totalMs": round(self.metrics.total_ms, 1),
        }


@dataclass(frozen=True)
class GenerationResult:
    """Successful generation output."""

    image_url: str
    proof: GenerationProof
    metrics: GenerationMetrics


class GenerationError(Exception):
    """Raised when a generation attempt fails with a known kind."""

    def __init__(
        self,
        kind: GenerationErrorKind,
        message: str,
        metrics: GenerationMetrics | None = None,
        proof: GenerationProof | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.metrics = metrics or GenerationMetrics()
        self.proof = proof


@dataclass
class ProviderImage:
    """Image returned by a provider, either inline bytes or a URL."""

    data: bytes | None = None
    url: str | None = None
