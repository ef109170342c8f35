"""
Secret generation and keyed digests.

Verification codes and refresh tokens are stored only as HMAC-SHA256
digests keyed with the server secret, so a leaked table cannot be
brute-forced offline without the key.
"""

import hmac
import hashlib
import secrets

REFRESH_TOKEN_BYTES = 32


class SecretDigester:
    """Keyed one-way digests for short-lived secrets."""

    def __init__(self, key: str):
        if not key:
            raise ValueError("Digest key cannot be empty")
        self._key = key.encode("utf-8")

    def digest(self, value: str, purpose: str) -> str:
        """Digest a secret value. `purpose` separates codes from tokens."""
        message = f"{purpose}:{value}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def matches(self, value: str, expected_digest: str, purpose: str) -> bool:
        """Constant-time comparison of a value against a stored digest."""
        return hmac.compare_digest(self.digest(value, purpose), expected_digest)


def generate_numeric_code(length: int) -> str:
    """Uniformly random numeric code, zero-padded."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def generate_refresh_token() -> str:
    """High-entropy opaque refresh token value."""
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
