"""
JWT token handler.

Generates and validates signed access tokens. Access tokens are verified
statelessly by signature and expiry; refresh tokens are opaque values owned
by the TokenService and never go through this module.
"""

import time
import uuid
import logging
from typing import Optional, Callable
from dataclasses import dataclass

from jose import jwt, JWTError

from ..config import DEFAULT_SECRET_KEY
from ..errors import TokenInvalid, TokenExpired

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_SECONDS = 900  # 15 minutes


@dataclass
class TokenPayload:
    """Access token claims."""
    user_id: str
    role: str
    exp: int  # Expiration timestamp
    iat: int  # Issued at timestamp
    jti: str
    token_type: str = "access"

    def to_claims(self) -> dict:
        return {
            "sub": self.user_id,
            "role": self.role,
            "exp": self.exp,
            "iat": self.iat,
            "jti": self.jti,
            "type": self.token_type,
        }

    @classmethod
    def from_claims(cls, data: dict) -> "TokenPayload":
        return cls(
            user_id=data["sub"],
            role=data.get("role", "user"),
            exp=int(data["exp"]),
            iat=int(data["iat"]),
            jti=data.get("jti", ""),
            token_type=data.get("type", "access"),
        )

    def to_dict(self) -> dict:
        return self.to_claims()


class JWTHandler:
    """
    Handles JWT access token generation and validation.

    The secret key is passed in by the caller; this class never reads the
    environment.
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl: int = ACCESS_TOKEN_EXPIRE_SECONDS,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize JWT handler.

        Args:
            secret_key: Secret key for signing tokens
            access_ttl: Access token lifetime in seconds
            clock: Time source returning epoch seconds (default: time.time)
        """
        self.secret_key = secret_key
        self.access_ttl = access_ttl
        self._clock = clock or time.time

        if self.secret_key == DEFAULT_SECRET_KEY:
            logger.warning(
                "Using default JWT secret key. "
                "Set JWT_SECRET_KEY environment variable in production!"
            )

    def create_access_token(
        self,
        user_id: str,
        role: str,
        expires_in: Optional[int] = None
    ) -> tuple[str, TokenPayload]:
        """
        Create an access token.

        Args:
            user_id: Unique user identifier
            role: User role claim
            expires_in: Custom expiration in seconds (default: access_ttl)

        Returns:
            Tuple of (encoded JWT string, payload)
        """
        now = int(self._clock())
        ttl = self.access_ttl if expires_in is None else expires_in

        payload = TokenPayload(
            user_id=user_id,
            role=role,
            exp=now + ttl,
            iat=now,
            jti=uuid.uuid4().hex,
        )

        token = jwt.encode(payload.to_claims(), self.secret_key, algorithm=ALGORITHM)
        logger.debug(f"Created access token for user {user_id}, expires in {ttl}s")
        return token, payload

    def verify_token(self, token: str) -> TokenPayload:
        """
        Verify and decode an access token.

        Args:
            token: JWT token string

        Returns:
            TokenPayload if valid

        Raises:
            TokenExpired: Signature is valid but the token is past its expiry
            TokenInvalid: Malformed token, bad signature or wrong token type
        """
        if not token:
            raise TokenInvalid("Missing token")

        try:
            # Expiry is checked below against our own clock
            data = jwt.decode(
                token,
                self.secret_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": False}
            )
        except JWTError as e:
            logger.debug(f"Token verification failed: {e}")
            raise TokenInvalid("Access token is invalid")

        try:
            payload = TokenPayload.from_claims(data)
        except (KeyError, TypeError, ValueError):
            raise TokenInvalid("Access token is missing required claims")

        if payload.token_type != "access":
            raise TokenInvalid("Invalid token type")

        if payload.exp <= int(self._clock()):
            logger.debug("Token expired")
            raise TokenExpired("Access token has expired")

        return payload
