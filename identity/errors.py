"""
Error taxonomy for the authentication core.

Every domain failure is an AuthError subclass carrying a stable `kind`.
Front ends map the kind to their own representation (HTTP status,
RPC error payload); the message text is informational only.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    INACTIVE = "inactive"
    CODE_INVALID = "code_invalid"
    CODE_EXPIRED = "code_expired"
    CODE_ALREADY_USED = "code_already_used"
    RATE_LIMITED = "rate_limited"
    TOKEN_INVALID = "token_invalid"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_REUSED = "token_reused"
    DUPLICATE_EMAIL = "duplicate_email"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"


class AuthError(Exception):
    """Base class for authentication core errors."""

    kind: ErrorKind = ErrorKind.INVALID_REQUEST
    default_message = "Authentication error"
    retryable = False

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
        }


class InvalidCredentials(AuthError):
    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "Invalid email or password"


class AccountInactive(AuthError):
    kind = ErrorKind.INACTIVE
    default_message = "Account is deactivated"


class CodeInvalid(AuthError):
    kind = ErrorKind.CODE_INVALID
    default_message = "Verification code is invalid"


class CodeExpired(AuthError):
    kind = ErrorKind.CODE_EXPIRED
    default_message = "Verification code has expired"


class CodeAlreadyUsed(AuthError):
    kind = ErrorKind.CODE_ALREADY_USED
    default_message = "Verification code was already used"


class RateLimited(AuthError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "Too many verification codes requested"

    def __init__(self, message: Optional[str] = None, retry_after: int = 0):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class TokenInvalid(AuthError):
    kind = ErrorKind.TOKEN_INVALID
    default_message = "Token is invalid"


class TokenExpired(AuthError):
    kind = ErrorKind.TOKEN_EXPIRED
    default_message = "Token has expired"


class TokenReused(AuthError):
    """A rotated refresh token was presented again; its family is revoked."""

    kind = ErrorKind.TOKEN_REUSED
    default_message = "Refresh token reuse detected; session revoked"


class DuplicateEmail(AuthError):
    kind = ErrorKind.DUPLICATE_EMAIL
    default_message = "A user with this email already exists"


class StorageUnavailable(AuthError):
    kind = ErrorKind.STORAGE_UNAVAILABLE
    default_message = "Storage is temporarily unavailable"
    retryable = True


class InvalidRequest(AuthError):
    kind = ErrorKind.INVALID_REQUEST
    default_message = "Invalid request"


class UserNotFound(AuthError):
    kind = ErrorKind.NOT_FOUND
    default_message = "User not found"
