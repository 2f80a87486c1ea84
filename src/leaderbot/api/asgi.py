"""ASGI entrypoint for the Leaderbot API."""

from leaderbot.api.app import create_app
from leaderbot.containers import build_container

app = create_app(build_container())
