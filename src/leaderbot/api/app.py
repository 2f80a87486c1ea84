"""FastAPI application factory."""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

from leaderbot.app_logging import configure_logging
from leaderbot.containers import AppContainer
from leaderbot.services.signatures import SIGNATURE_HEADER, verify_signature


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        state_container.event_queue.start()
        try:
            yield
        finally:
            await state_container.event_queue.stop()
            await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    public_dir = Path(container.settings.public_dir)
    for prefix in ("generated", "demo"):
        app.mount(
            f"/{prefix}",
            StaticFiles(directory=public_dir / prefix, check_dir=False),
            name=prefix,
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/webhook/facebook")
    async def verify_webhook(
        mode: str | None = Query(default=None, alias="hub.mode"),
        token: str | None = Query(default=None, alias="hub.verify_token"),
        challenge: str | None = Query(default=None, alias="hub.challenge"),
    ) -> PlainTextResponse:
        """Answer the platform's subscription handshake."""
        if mode == "subscribe" and token == container.settings.fb_verify_token:
            logger.info("Webhook subscription verified")
            return PlainTextResponse(challenge or "")
        logger.warning("Webhook verification rejected")
        return PlainTextResponse("Forbidden", status_code=403)

    @app.post("/webhook/facebook")
    async def receive_webhook(request: Request) -> JSONResponse:
        """Verify, parse and enqueue a webhook delivery, then acknowledge it."""
        state_container: AppContainer = request.app.state.container
        app_secret = state_container.settings.fb_app_secret
        if not app_secret:
            logger.error("FB_APP_SECRET is not configured; rejecting webhook")
            return JSONResponse({"status": "error"}, status_code=500)
        raw_body = await request.body()
        if not verify_signature(
            raw_body, request.headers.get(SIGNATURE_HEADER), app_secret
        ):
            logger.warning("Webhook signature mismatch")
            return JSONResponse({"status": "forbidden"}, status_code=403)
        try:
            payload = json.loads(raw_body)
        except ValueError:
            logger.warning("Webhook body is not valid JSON")
            return JSONResponse({"status": "bad request"}, status_code=400)
        if not state_container.event_queue.enqueue(payload):
            return JSONResponse({"status": "busy"}, status_code=503)
        return JSONResponse({"status": "ok"})

    return app
