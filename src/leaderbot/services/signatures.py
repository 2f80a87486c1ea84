"""Webhook request signature verification."""

import hashlib
import hmac

SIGNATURE_HEADER = "X-Hub-Signature-256"
_PREFIX = "sha256="


def verify_signature(raw_body: bytes, header: str | None, app_secret: str) -> bool:
    """Check an X-Hub-Signature-256 header against the raw request body."""
    if not header or not header.startswith(_PREFIX):
        return False
    signature = header[len(_PREFIX) :].strip().lower()
    expected = sign(raw_body, app_secret)[len(_PREFIX) :]
    return hmac.compare_digest(signature, expected)


def sign(raw_body: bytes, app_secret: str) -> str:
    """Return the header value the platform would send for a body."""
    digest = hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"{_PREFIX}{digest}"
