"""
Access and refresh token lifecycle.

Access tokens are stateless JWTs. Refresh tokens are opaque random values
stored as keyed digests; every use rotates them within a token family, and
presenting a rotated token again revokes the whole family.
"""

import time
import logging
from typing import Optional, Callable
from dataclasses import dataclass

from ..auth.digest import SecretDigester, generate_refresh_token
from ..auth.jwt_handler import JWTHandler, TokenPayload
from ..config import AuthPolicy
from ..errors import TokenInvalid, TokenExpired, TokenReused, AccountInactive
from ..models import User, AccessToken, RefreshToken, IssuedRefreshToken, TokenPair, new_id
from ..storage import AuthStorage

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("identity.security")

REFRESH_PURPOSE = "refresh-token"


@dataclass
class TokenReuseEvent:
    """Passed to the reuse hook when a rotated refresh token is presented."""
    user_id: str
    family_id: str
    token_id: str
    revoked_count: int
    detected_at: float


class TokenService:
    """
    Issues, rotates and revokes tokens.

    Rotation of one presented token is a single conditional update in
    storage; of several concurrent rotations with the same token only one
    succeeds. The losers are handled like a reuse: the family is revoked
    and they raise TokenReused.
    """

    def __init__(
        self,
        storage: AuthStorage,
        jwt_handler: JWTHandler,
        digester: SecretDigester,
        policy: AuthPolicy,
        user_loader: Callable[[str], Optional[User]],
        clock: Optional[Callable[[], float]] = None,
        on_token_reuse: Optional[Callable[[TokenReuseEvent], None]] = None
    ):
        """
        Initialize token service.

        Args:
            storage: Storage backend
            jwt_handler: Access token codec
            digester: Keyed digest for refresh token values
            policy: TTL configuration
            user_loader: Returns the current User for an id (None if unknown)
            clock: Time source returning epoch seconds (default: time.time)
            on_token_reuse: Optional callback for reuse security events
        """
        self.storage = storage
        self.jwt = jwt_handler
        self.digester = digester
        self.policy = policy
        self._load_user = user_loader
        self._clock = clock or time.time
        self._on_token_reuse = on_token_reuse

    # Access tokens

    def issue_access_token(self, user: User) -> AccessToken:
        """Sign a short-lived access token. No storage access."""
        token, payload = self.jwt.create_access_token(
            user_id=user.user_id,
            role=user.role,
            expires_in=self.policy.access_token_ttl,
        )
        return AccessToken(token=token, expires_at=payload.exp)

    def verify_access_token(self, token: str) -> TokenPayload:
        """
        Verify signature and expiry of an access token. No storage access.

        Raises:
            TokenInvalid, TokenExpired
        """
        return self.jwt.verify_token(token)

    # Refresh tokens

    def _new_refresh_record(self, user_id: str, family_id: Optional[str] = None):
        now = self._clock()
        value = generate_refresh_token()
        token_id = new_id()
        record = RefreshToken(
            token_id=token_id,
            user_id=user_id,
            family_id=family_id or token_id,
            token_hash=self.digester.digest(value, REFRESH_PURPOSE),
            expires_at=now + self.policy.refresh_token_ttl,
            created_at=now,
        )
        return value, record

    def issue_refresh_token(self, user: User) -> IssuedRefreshToken:
        """Create and persist a refresh token starting a new family."""
        value, record = self._new_refresh_record(user.user_id)
        self.storage.insert_refresh_token(record)
        logger.debug(f"Issued refresh token family {record.family_id} for user {user.user_id}")
        return IssuedRefreshToken(value=value, record=record)

    def issue_pair(self, user: User) -> TokenPair:
        """Access token plus a refresh token in a new family."""
        access = self.issue_access_token(user)
        refresh = self.issue_refresh_token(user)
        return TokenPair(
            access_token=access.token,
            refresh_token=refresh.value,
            access_expires_at=access.expires_at,
            refresh_expires_at=refresh.expires_at,
            expires_in=self.policy.access_token_ttl,
        )

    def _lookup(self, value: str) -> Optional[RefreshToken]:
        if not value:
            return None
        return self.storage.get_refresh_token_by_hash(
            self.digester.digest(value, REFRESH_PURPOSE)
        )

    def _handle_reuse(self, token: RefreshToken) -> TokenReused:
        revoked = self.storage.revoke_family(token.family_id)
        event = TokenReuseEvent(
            user_id=token.user_id,
            family_id=token.family_id,
            token_id=token.token_id,
            revoked_count=revoked,
            detected_at=self._clock(),
        )
        security_logger.warning(
            f"Refresh token reuse detected for user {token.user_id}: "
            f"family {token.family_id} revoked ({revoked} tokens)"
        )
        if self._on_token_reuse:
            try:
                self._on_token_reuse(event)
            except Exception as e:
                logger.error(f"Token reuse hook failed: {e}")
        return TokenReused()

    def rotate(self, value: str) -> TokenPair:
        """
        Exchange a refresh token for a new access + refresh pair.

        Raises:
            TokenInvalid: Unknown token, or revoked by logout / revoke-all
            TokenExpired: Token past its expiry
            TokenReused: Token was already rotated (family is now revoked)
            AccountInactive: Owner deactivated or gone (token is revoked)
        """
        token = self._lookup(value)
        if token is None:
            raise TokenInvalid("Refresh token is invalid")

        if token.was_rotated():
            raise self._handle_reuse(token)

        if token.revoked:
            raise TokenInvalid("Refresh token has been revoked")

        if token.is_expired(self._clock()):
            raise TokenExpired("Refresh token has expired")

        user = self._load_user(token.user_id)
        if user is None or not user.is_active:
            self.storage.revoke_refresh_token(token.token_id)
            raise AccountInactive()

        new_value, successor = self._new_refresh_record(user.user_id, token.family_id)
        if not self.storage.rotate_refresh_token(token.token_id, successor):
            # Another caller rotated or revoked this token after our lookup
            current = self.storage.get_refresh_token(token.token_id)
            if current is not None and not current.was_rotated():
                raise TokenInvalid("Refresh token has been revoked")
            raise self._handle_reuse(token)

        access = self.issue_access_token(user)
        logger.info(f"Rotated refresh token for user {user.user_id} (family {token.family_id})")
        return TokenPair(
            access_token=access.token,
            refresh_token=new_value,
            access_expires_at=access.expires_at,
            refresh_expires_at=int(successor.expires_at),
            expires_in=self.policy.access_token_ttl,
        )

    def revoke(self, value: str) -> bool:
        """Revoke a single refresh token. Unknown tokens are ignored."""
        token = self._lookup(value)
        if token is None:
            return False
        revoked = self.storage.revoke_refresh_token(token.token_id)
        if revoked:
            logger.info(f"Revoked refresh token for user {token.user_id}")
        return revoked

    def revoke_all(self, user_id: str) -> int:
        """Revoke every unrevoked refresh token of a user."""
        count = self.storage.revoke_user_tokens(user_id)
        logger.info(f"Revoked {count} refresh tokens for user {user_id}")
        return count

