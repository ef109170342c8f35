"""
Storage abstraction for the authentication core.

Backends provide key lookups and atomic conditional updates. Every method
that changes a one-shot flag (`used`, `revoked`) is a compare-and-swap:
it reports whether *this* call performed the transition, so exactly one of
several concurrent callers observes success.

Backends raise StorageUnavailable for driver/transport failures and
DuplicateEmail when the unique email constraint is violated.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Tuple

from ..models import User, VerificationCode, RefreshToken


class AuthStorage(ABC):
    """Persistence primitives for users, verification codes and refresh tokens."""

    # Users

    @abstractmethod
    def insert_user(self, user: User) -> User:
        """Insert a user. Raises DuplicateEmail if the email is taken."""

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        """Look up a user by normalized email."""

    @abstractmethod
    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Look up a user by id."""

    @abstractmethod
    def update_user(self, user_id: str, **fields) -> Optional[User]:
        """Set the given fields (and updated_at). Returns None if not found."""

    @abstractmethod
    def list_users(self, limit: int, offset: int = 0) -> List[User]:
        """A page of users, oldest first."""

    # Verification codes

    @abstractmethod
    def insert_code(
        self,
        code: VerificationCode,
        window_start: float,
        limit: int
    ) -> Tuple[bool, Optional[float]]:
        """
        Atomically rate-check, supersede and insert a verification code.

        If `limit` or more codes were created for (user, channel) at or
        after `window_start`, nothing changes and (False, oldest_created_at)
        is returned. Otherwise every unused code for the pair is marked
        used, the new code is inserted and (True, None) is returned.
        """

    @abstractmethod
    def get_active_code(self, user_id: str, channel: str) -> Optional[VerificationCode]:
        """Most recent unused code for (user, channel)."""

    @abstractmethod
    def get_latest_code(self, user_id: str, channel: str) -> Optional[VerificationCode]:
        """Most recent code for (user, channel), used or not."""

    @abstractmethod
    def mark_code_used(self, code_id: str) -> bool:
        """Set used=true only if it is still false. True if this call did it."""

    # Refresh tokens

    @abstractmethod
    def insert_refresh_token(self, token: RefreshToken) -> RefreshToken:
        """Insert a refresh token record."""

    @abstractmethod
    def get_refresh_token_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        """Look up a refresh token by its digest."""

    @abstractmethod
    def get_refresh_token(self, token_id: str) -> Optional[RefreshToken]:
        """Look up a refresh token by id."""

    @abstractmethod
    def rotate_refresh_token(self, token_id: str, successor: RefreshToken) -> bool:
        """
        Revoke `token_id` (setting replaced_by) and insert `successor`.

        Both happen in one atomic step, and only if the old token is still
        unrevoked. Returns False (and changes nothing) otherwise.
        """

    @abstractmethod
    def revoke_refresh_token(self, token_id: str) -> bool:
        """Revoke one token if still unrevoked. True if this call did it."""

    @abstractmethod
    def revoke_family(self, family_id: str) -> int:
        """Revoke every unrevoked token of a family. Returns the count."""

    @abstractmethod
    def revoke_user_tokens(self, user_id: str) -> int:
        """Revoke every unrevoked token of a user. Returns the count."""

    @abstractmethod
    def list_family(self, family_id: str) -> List[RefreshToken]:
        """All tokens of a family, oldest first."""

    # Maintenance

    @abstractmethod
    def purge_expired(self, before: float) -> int:
        """Delete codes and refresh tokens that expired before `before`."""

    def close(self):
        """Release backend resources."""
