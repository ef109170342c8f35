"""
Domain records for users, verification codes and refresh tokens.

These are plain dataclasses shared by every storage backend. Timestamps on
codes and tokens are epoch seconds; user timestamps are ISO strings.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Literal
from dataclasses import dataclass, asdict, field

Channel = Literal["email", "sms", "chat"]
Role = Literal["user", "admin"]


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class User:
    """User account."""
    user_id: str
    email: str  # Normalized (lower-cased) email, unique
    password_hash: str
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Role = "user"
    email_verified: bool = False
    phone_verified: bool = False
    is_active: bool = True
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)
    last_login: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls(**data)

    def is_verified(self, channel: str) -> bool:
        """Check the verified flag backing a delivery channel."""
        if channel == "email":
            return self.email_verified
        return self.phone_verified

    def public_dict(self) -> dict:
        """User fields safe to hand to a front end."""
        data = self.to_dict()
        data.pop("password_hash")
        return data


@dataclass
class VerificationCode:
    """Stored one-time code. Only the digest of the code is kept."""
    code_id: str
    user_id: str
    channel: Channel
    code_hash: str
    expires_at: float
    created_at: float
    used: bool = False

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class RefreshToken:
    """Stored refresh token. Only the digest of the token value is kept."""
    token_id: str
    user_id: str
    family_id: str  # token_id of the first token in the rotation chain
    token_hash: str
    expires_at: float
    created_at: float
    revoked: bool = False
    replaced_by: Optional[str] = None  # successor token_id, set by rotation

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def was_rotated(self) -> bool:
        return self.revoked and self.replaced_by is not None


@dataclass
class CodeHandle:
    """Everything an external sender needs to deliver a code."""
    user_id: str
    channel: Channel
    code: str
    expires_at: float
    destination: Optional[str] = None

    def __repr__(self) -> str:
        # Keep the plaintext code out of logs and tracebacks
        return (
            f"CodeHandle(user_id={self.user_id!r}, channel={self.channel!r}, "
            f"expires_at={self.expires_at!r})"
        )


@dataclass
class AccessToken:
    """Signed access token and its expiry timestamp."""
    token: str
    expires_at: int


@dataclass
class IssuedRefreshToken:
    """Plaintext refresh token value plus its stored record."""
    value: str
    record: RefreshToken

    @property
    def expires_at(self) -> int:
        return int(self.record.expires_at)


@dataclass
class TokenPair:
    """Access and refresh token pair."""
    access_token: str
    refresh_token: str
    access_expires_at: int
    refresh_expires_at: int
    expires_in: int
    token_type: str = "bearer"

    def to_dict(self) -> dict:
        return asdict(self)
