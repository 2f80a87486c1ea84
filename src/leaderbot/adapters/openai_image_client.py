"""OpenAI Images API client for image-to-image styling."""

import logging
from dataclasses import dataclass

import openai
from openai import AsyncOpenAI

from leaderbot.domain.generation import GenerationError, GenerationErrorKind
from leaderbot.services.generation import IMAGE_EXTENSIONS, ImageProvider

logger = logging.getLogger(__name__)


@dataclass
class OpenAIImageClient(ImageProvider):
    """Image provider backed by the OpenAI images edit endpoint."""

    client: AsyncOpenAI
    model: str = "gpt-image-1"

    @classmethod
    def create(cls, api_key: str, model: str = "gpt-image-1") -> "OpenAIImageClient":
        """Create an OpenAI image client.

        SDK retries are disabled; the generation pipeline owns the timeout.
        """
        return cls(client=AsyncOpenAI(api_key=api_key, max_retries=0), model=model)

    async def edit_image(
        self, *, image_bytes: bytes, content_type: str, prompt: str
    ) -> dict[str, object]:
        """Send the source image and prompt, returning the raw response."""
        extension = IMAGE_EXTENSIONS.get(content_type, "png")
        try:
            response = await self.client.images.edit(
                model=self.model,
                image=(f"source.{extension}", image_bytes, content_type),
                prompt=prompt,
            )
        except openai.APITimeoutError as exc:
            raise GenerationError(
                GenerationErrorKind.GENERATION_TIMEOUT, "OpenAI request timed out"
            ) from exc
        except openai.OpenAIError as exc:
            logger.warning("OpenAI image edit failed: %s", type(exc).__name__)
            raise GenerationError(
                GenerationErrorKind.PROVIDER_ERROR,
                f"OpenAI image edit failed: {type(exc).__name__}",
            ) from exc
        return response.model_dump()

    async def close(self) -> None:
        """Close the underlying OpenAI client."""
        await self.client.close()
