"""Tests for HTTP-based adapters."""

import asyncio
import json

import httpx
import openai
import pytest

from leaderbot.adapters.messenger_client import HttpxMessengerClient
from leaderbot.adapters.openai_image_client import OpenAIImageClient
from leaderbot.domain.actions import QuickReply
from leaderbot.domain.generation import GenerationError, GenerationErrorKind


class _FakeImagesResponse:
    def model_dump(self) -> dict[str, object]:
        return {"data": [{"b64_json": "YWJj"}]}


class _FakeImages:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.last_payload: dict[str, object] | None = None

    async def edit(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        if self.error is not None:
            raise self.error
        return _FakeImagesResponse()


class _FakeOpenAI:
    def __init__(self, error: Exception | None = None) -> None:
        self.images = _FakeImages(error)


def test_openai_image_client_sends_image_and_prompt() -> None:
    fake = _FakeOpenAI()
    client = OpenAIImageClient(client=fake, model="gpt-image-1")

    result = asyncio.run(
        client.edit_image(
            image_bytes=b"\x89PNG", content_type="image/png", prompt="Make it gold"
        )
    )

    assert result == {"data": [{"b64_json": "YWJj"}]}
    assert fake.images.last_payload == {
        "model": "gpt-image-1",
        "image": ("source.png", b"\x89PNG", "image/png"),
        "prompt": "Make it gold",
    }


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (
            openai.APITimeoutError(
                request=httpx.Request("POST", "https://api.openai.com")
            ),
            GenerationErrorKind.GENERATION_TIMEOUT,
        ),
        (openai.OpenAIError("bad request"), GenerationErrorKind.PROVIDER_ERROR),
    ],
)
def test_openai_image_client_maps_errors(
    error: Exception, kind: GenerationErrorKind
) -> None:
    client = OpenAIImageClient(client=_FakeOpenAI(error))

    with pytest.raises(GenerationError) as exc_info:
        asyncio.run(
            client.edit_image(
                image_bytes=b"\xff\xd8\xff", content_type="image/jpeg", prompt="p"
            )
        )

    assert exc_info.value.kind is kind


def test_messenger_client_sends_messages() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"recipient_id": "psid", "message_id": "m"})

    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    client = HttpxMessengerClient(
        page_access_token="page-token", http_client=async_client
    )

    asyncio.run(client.send_text("psid", "Hallo"))
    asyncio.run(
        client.send_quick_replies(
            "psid", "Kies", [QuickReply("✨ Gold", "STYLE_GOLD")]
        )
    )
    asyncio.run(client.send_image("psid", "https://bot.example/generated/x.png"))

    assert all(
        request.url.path == "/v21.0/me/messages" for request in requests
    )
    assert all(
        request.headers["Authorization"] == "Bearer page-token" for request in requests
    )
    assert all("page-token" not in str(request.url) for request in requests)
    bodies = [json.loads(request.content) for request in requests]
    assert bodies[0] == {"recipient": {"id": "psid"}, "message": {"text": "Hallo"}}
    assert bodies[1]["message"]["quick_replies"] == [
        {"content_type": "text", "title": "✨ Gold", "payload": "STYLE_GOLD"}
    ]
    assert bodies[2]["message"]["attachment"] == {
        "type": "image",
        "payload": {"url": "https://bot.example/generated/x.png", "is_reusable": False},
    }


def test_messenger_client_raises_on_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "bad"}})

    async_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = HttpxMessengerClient(page_access_token="token", http_client=async_client)

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.send_text("psid", "Hallo"))
