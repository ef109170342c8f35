"""
Password handling utilities.

Uses bcrypt for secure password hashing.
"""

import re
import logging
from typing import Optional

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt work factor (higher = more secure but slower)
BCRYPT_ROUNDS = 12

# bcrypt only reads the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$")


class PasswordHandler:
    """
    Handles password hashing and verification using bcrypt.

    Usage:
        handler = PasswordHandler()
        hashed = handler.hash("my_password")
        is_valid = handler.verify("my_password", hashed)
    """

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        """
        Initialize password handler.

        Args:
            rounds: bcrypt work factor (default: 12)
        """
        self.rounds = rounds
        # Compared against when the account does not exist, so a miss costs
        # the same time as a wrong password
        self._dummy_hash = self.hash("dummy-password-for-timing")

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string (includes salt)
        """
        if not password:
            raise ValueError("Password cannot be empty")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")

        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)

        return hashed.decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        """
        Verify a password against a hash.

        bcrypt.checkpw compares in constant time.

        Args:
            password: Plain text password to verify
            hashed: Previously hashed password

        Returns:
            True if password matches, False otherwise
        """
        if not password or not hashed:
            return False
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return False

        try:
            return bcrypt.checkpw(
                password.encode("utf-8"),
                hashed.encode("utf-8")
            )
        except ValueError:
            # Malformed stored hash; never log the hash itself
            logger.warning("Password verification failed: malformed hash")
            return False

    def burn(self, password: str) -> bool:
        """Run a verification against the dummy hash. Always returns False."""
        self.verify(password or "x", self._dummy_hash)
        return False

    def needs_rehash(self, hashed: str) -> bool:
        """
        Check if a hash needs to be rehashed (e.g., rounds changed).

        bcrypt hash format: $2b$rounds$salt+hash
        """
        parts = hashed.split("$")
        if len(parts) >= 3 and parts[2].isdigit():
            return int(parts[2]) != self.rounds
        return True


def normalize_email(email: str) -> Optional[str]:
    """
    Normalize an email address (strip + lower-case).

    Returns:
        Normalized email or None if the format is invalid

    Examples:
        normalize_email(" A@X.com ") -> "a@x.com"
        normalize_email("not-an-email") -> None
    """
    if not email:
        return None

    cleaned = email.strip().lower()
    if not EMAIL_PATTERN.match(cleaned):
        return None
    return cleaned


def is_strong_password(password: str) -> bool:
    """
    At least 8 characters with a lower-case letter, an upper-case letter and
    a digit, and no more than 72 bytes of UTF-8.
    """
    if not password or len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False
    return PASSWORD_PATTERN.match(password) is not None


def normalize_phone(phone: str) -> Optional[str]:
    """
    Normalize a phone number to E.164.

    Removes spaces, dashes and parentheses; the number must carry its
    country code.

    Examples:
        normalize_phone("+55 (11) 99999-9999") -> "+5511999999999"
        normalize_phone("+1 415 555 0100") -> "+14155550100"
        normalize_phone("99999-9999") -> None
    """
    if not phone:
        return None

    cleaned = "".join(c for c in phone if c.isdigit() or c == "+")

    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]

    if not cleaned.startswith("+") or "+" in cleaned[1:]:
        return None

    # E.164: up to 15 digits, at least 8 for any real number
    digits = cleaned[1:]
    if not 8 <= len(digits) <= 15:
        return None

    return cleaned


def mask_destination(destination: Optional[str]) -> str:
    """Mask an email address or phone number for logging."""
    if not destination:
        return "<none>"
    if "@" in destination:
        local, _, domain = destination.partition("@")
        return f"{local[:1]}***@{domain}"
    return f"{destination[:3]}***{destination[-2:]}"
