"""
Authentication primitives for the identity gateway.

Provides bcrypt password hashing, JWT access tokens, keyed digests for
verification codes and refresh tokens, and input normalization.
"""

from .jwt_handler import JWTHandler, TokenPayload
from .password import (
    PasswordHandler,
    normalize_email,
    normalize_phone,
    is_strong_password,
    mask_destination,
)
from .digest import SecretDigester, generate_numeric_code, generate_refresh_token

__all__ = [
    "JWTHandler",
    "TokenPayload",
    "PasswordHandler",
    "normalize_email",
    "normalize_phone",
    "is_strong_password",
    "mask_destination",
    "SecretDigester",
    "generate_numeric_code",
    "generate_refresh_token",
]
