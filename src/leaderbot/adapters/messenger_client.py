"""Messenger Send API client adapter."""

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlsplit

import httpx

from leaderbot.domain.actions import QuickReply

GRAPH_API_VERSION = "v21.0"

logger = logging.getLogger(__name__)


class MessengerClient(Protocol):
    """Interface for Messenger Send API interactions."""

    async def send_text(self, recipient_id: str, text: str) -> None:
        """Send a text message."""

    async def send_quick_replies(
        self, recipient_id: str, text: str, replies: list[QuickReply]
    ) -> None:
        """Send a text message with quick replies."""

    async def send_image(self, recipient_id: str, url: str) -> None:
        """Send an image attachment by URL."""


@dataclass
class HttpxMessengerClient:
    """Messenger client implemented with httpx."""

    page_access_token: str
    http_client: httpx.AsyncClient
    api_version: str = GRAPH_API_VERSION

    @classmethod
    def create(cls, page_access_token: str) -> "HttpxMessengerClient":
        """Create a Messenger client with a managed httpx session."""
        return cls(page_access_token=page_access_token, http_client=httpx.AsyncClient())

    async def send_text(self, recipient_id: str, text: str) -> None:
        """Send a plain text message."""
        await self._send(recipient_id, {"text": text})

    async def send_quick_replies(
        self, recipient_id: str, text: str, replies: list[QuickReply]
    ) -> None:
        """Send a text message with quick-reply buttons."""
        await self._send(
            recipient_id,
            {
                "text": text,
                "quick_replies": [
                    {
                        "content_type": "text",
                        "title": reply.title,
                        "payload": str(reply.payload),
                    }
                    for reply in replies
                ],
            },
        )

    async def send_image(self, recipient_id: str, url: str) -> None:
        """Send an image attachment referenced by URL."""
        parts = urlsplit(url)
        logger.info("Sending image %s://%s%s", parts.scheme, parts.netloc, parts.path)
        await self._send(
            recipient_id,
            {
                "attachment": {
                    "type": "image",
                    "payload": {"url": url, "is_reusable": False},
                }
            },
        )

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def _send(self, recipient_id: str, message: dict[str, object]) -> None:
        url = f"https://graph.facebook.com/{self.api_version}/me/messages"
        payload: dict[str, object] = {
            "recipient": {"id": recipient_id},
            "message": message,
        }
        # Token goes in a header so it never appears in logged request URLs.
        response = await self.http_client.post(
            url,
            headers={"Authorization": f"Bearer {self.page_access_token}"},
            json=payload,
            timeout=10,
        )
        response.raise_for_status()
