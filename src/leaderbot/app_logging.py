"""Logging configuration helpers."""

import json
import logging

_REDACTED_KEY_PARTS = ("token", "secret", "psid")


def configure_logging(level: str = "INFO") -> None:
    """Configure application logging with a single stream handler."""
    logger = logging.getLogger("leaderbot")
    logger.setLevel(logging.getLevelName(level.upper()))
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


def log_event(
    logger: logging.Logger, event: str, level: int = logging.INFO, **fields: object
) -> None:
    """Write one structured line, dropping credential and raw id fields."""
    redacted = {
        key: value
        for key, value in fields.items()
        if not any(part in key.lower() for part in _REDACTED_KEY_PARTS)
    }
    logger.log(level, "%s %s", event, json.dumps(redacted, sort_keys=True, default=str))
