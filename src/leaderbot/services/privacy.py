"""Privacy-preserving user key derivation."""

import hashlib
import hmac
from dataclasses import dataclass

LOG_ID_LENGTH = 8


class PrivacyConfigError(RuntimeError):
    """Raised when the privacy pepper is not configured."""


@dataclass(frozen=True)
class PrivacyKeyDeriver:
    """Derive internal user keys from platform ids with a keyed HMAC."""

    pepper: str

    def __post_init__(self) -> None:
        if not self.pepper or not self.pepper.strip():
            raise PrivacyConfigError("PRIVACY_PEPPER is required")

    def to_user_key(self, platform_id: str) -> str:
        """Return the 64-character hex HMAC-SHA256 of a platform id."""
        return hmac.new(
            self.pepper.strip().encode("utf-8"),
            platform_id.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()


def to_log_user(user_key: str) -> str:
    """Truncate a user key for safe inclusion in logs."""
    return user_key[:LOG_ID_LENGTH]
