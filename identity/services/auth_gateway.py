"""
Authentication gateway.

The single entry point both front ends call. It orchestrates the
CredentialStore, VerificationCodeManager and TokenService into the login,
verification, refresh and logout flows and holds no mutable state of its
own; every operation returns an AuthResult rather than raising.
"""

import logging
from typing import Optional
from dataclasses import dataclass

from ..auth.jwt_handler import TokenPayload
from ..config import AuthPolicy
from ..errors import (
    AuthError,
    InvalidCredentials,
    AccountInactive,
    InvalidRequest,
    UserNotFound,
)
from ..models import User, TokenPair, CodeHandle
from .credential_store import CredentialStore
from .token_service import TokenService
from .verification_service import VerificationCodeManager

logger = logging.getLogger(__name__)


@dataclass
class PendingVerification:
    """Login succeeded but a verification code must be submitted first."""
    user_id: str
    channel: str
    expires_at: float
    handle: Optional[CodeHandle] = None  # None when delivery already happened

    def to_dict(self) -> dict:
        # The plaintext code never leaves through a front end
        return {
            "user_id": self.user_id,
            "channel": self.channel,
            "expires_at": int(self.expires_at),
        }


@dataclass
class AuthResult:
    """Authentication result."""
    success: bool
    tokens: Optional[TokenPair] = None
    user: Optional[User] = None
    pending: Optional[PendingVerification] = None
    claims: Optional[TokenPayload] = None
    error: Optional[AuthError] = None

    @property
    def state(self) -> str:
        """Unauthenticated, PendingVerification or Authenticated."""
        if self.tokens is not None or self.claims is not None:
            return "authenticated"
        if self.pending is not None:
            return "pending_verification"
        return "unauthenticated"

    def to_dict(self) -> dict:
        result = {"success": self.success, "state": self.state}
        if self.tokens:
            result["tokens"] = self.tokens.to_dict()
        if self.user:
            result["user"] = self.user.public_dict()
        if self.pending:
            result["pending"] = self.pending.to_dict()
        if self.claims:
            result["claims"] = self.claims.to_dict()
        if self.error:
            result["error"] = self.error.to_dict()
        return result

    @classmethod
    def failed(cls, error: AuthError) -> "AuthResult":
        return cls(success=False, error=error)


class AuthGateway:
    """
    Orchestrates the authentication flows.

    Handles:
    - Registration and password login
    - Pending verification with one-time codes (email, SMS, chat)
    - Refresh token rotation with reuse detection
    - Logout of one session or of every session of a user
    - Profile updates and account activation
    """

    def __init__(
        self,
        credentials: CredentialStore,
        codes: VerificationCodeManager,
        tokens: TokenService,
        policy: AuthPolicy
    ):
        self.credentials = credentials
        self.codes = codes
        self.tokens = tokens
        self.policy = policy

    def _login_channel(self, user: User) -> str:
        """The configured channel, or email for users with no phone on file."""
        channel = self.policy.verification_channel
        if channel != "email" and not user.phone:
            return "email"
        return channel

    def _needs_verification(self, user: User) -> bool:
        return (
            self.policy.require_verification
            and not user.is_verified(self._login_channel(user))
        )

    def _start_verification(self, user: User) -> AuthResult:
        handle = self.codes.issue(user, self._login_channel(user))
        pending = PendingVerification(
            user_id=user.user_id,
            channel=handle.channel,
            expires_at=handle.expires_at,
            handle=handle,
        )
        return AuthResult(success=True, user=user, pending=pending)

    def _authenticated(self, user: User) -> AuthResult:
        tokens = self.tokens.issue_pair(user)
        self.credentials.record_login(user.user_id)
        return AuthResult(success=True, tokens=tokens, user=user)

    def register(
        self,
        email: str,
        password: str,
        phone: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None
    ) -> AuthResult:
        """
        Register a new user.

        Returns tokens, or a pending verification when verification is
        required before token issuance.
        """
        try:
            user = self.credentials.create(
                email=email,
                password=password,
                phone=phone,
                first_name=first_name,
                last_name=last_name,
            )

            if self._needs_verification(user):
                return self._start_verification(user)

            return self._authenticated(user)

        except AuthError as e:
            logger.info(f"Registration failed: {e.kind.value}")
            return AuthResult.failed(e)

    def login(self, email: str, password: str) -> AuthResult:
        """
        Login with email and password.

        Returns:
            AuthResult with tokens, or with `pending` and a fresh code handle
            when the account still has to verify its channel
        """
        try:
            try:
                user = self.credentials.find_by_email(email)
            except UserNotFound:
                user = None

            if not self.credentials.verify_password(user, password):
                raise InvalidCredentials()

            if not user.is_active:
                raise AccountInactive()

            if self._needs_verification(user):
                logger.info(f"Login pending verification: {user.email}")
                return self._start_verification(user)

            logger.info(f"User logged in: {user.email}")
            return self._authenticated(user)

        except AuthError as e:
            logger.info(f"Login failed: {e.kind.value}")
            return AuthResult.failed(e)

    def request_verification(self, user_id: str, channel: str) -> AuthResult:
        """Issue a fresh code for (user, channel), e.g. after CodeExpired."""
        try:
            user = self.credentials.get_by_id(user_id)
            if not user.is_active:
                raise AccountInactive()

            handle = self.codes.issue(user, channel)
            pending = PendingVerification(
                user_id=user.user_id,
                channel=channel,
                expires_at=handle.expires_at,
                handle=handle,
            )
            return AuthResult(success=True, user=user, pending=pending)

        except AuthError as e:
            logger.info(f"Verification request failed: {e.kind.value}")
            return AuthResult.failed(e)

    def submit_verification(self, user_id: str, channel: str, code: str) -> AuthResult:
        """
        Consume a verification code, mark the channel verified and issue tokens.
        """
        try:
            self.codes.consume(user_id, channel, code)
            user = self.credentials.mark_verified(user_id, channel)

            if not user.is_active:
                raise AccountInactive()

            return self._authenticated(user)

        except AuthError as e:
            logger.info(f"Verification failed for user {user_id}: {e.kind.value}")
            return AuthResult.failed(e)

    def refresh(self, refresh_token: str) -> AuthResult:
        """Rotate a refresh token into a new token pair."""
        try:
            tokens = self.tokens.rotate(refresh_token)
            return AuthResult(success=True, tokens=tokens)

        except AuthError as e:
            logger.info(f"Token refresh failed: {e.kind.value}")
            return AuthResult.failed(e)

    def logout(
        self,
        refresh_token: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> AuthResult:
        """
        Revoke one refresh token, or every refresh token of a user.

        Unknown or already revoked tokens still count as a successful logout.
        """
        try:
            if refresh_token:
                self.tokens.revoke(refresh_token)
            elif user_id:
                self.tokens.revoke_all(user_id)
            else:
                raise InvalidRequest("refresh_token or user_id is required")
            return AuthResult(success=True)

        except AuthError as e:
            logger.info(f"Logout failed: {e.kind.value}")
            return AuthResult.failed(e)

    def authenticate(self, access_token: str) -> AuthResult:
        """Verify an access token and load its (active) user."""
        try:
            claims = self.tokens.verify_access_token(access_token)
            user = self.credentials.get_by_id(claims.user_id)
            if not user.is_active:
                raise AccountInactive()
            return AuthResult(success=True, user=user, claims=claims)

        except AuthError as e:
            return AuthResult.failed(e)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> AuthResult:
        """Change a password and end every existing session of the user."""
        try:
            user = self.credentials.change_password(user_id, current_password, new_password)
            self.tokens.revoke_all(user_id)
            return AuthResult(success=True, user=user)

        except AuthError as e:
            logger.info(f"Password change failed for user {user_id}: {e.kind.value}")
            return AuthResult.failed(e)

    def set_active(self, user_id: str, active: bool) -> AuthResult:
        """Activate or deactivate a user; deactivation ends every session."""
        try:
            user = self.credentials.set_active(user_id, active)
            if not active:
                self.tokens.revoke_all(user_id)
            return AuthResult(success=True, user=user)

        except AuthError as e:
            return AuthResult.failed(e)

    def get_user(self, user_id: str) -> AuthResult:
        """Load a user by id."""
        try:
            return AuthResult(success=True, user=self.credentials.get_by_id(user_id))

        except AuthError as e:
            return AuthResult.failed(e)

    def update_profile(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None
    ) -> AuthResult:
        """Update names and phone; a changed phone must be verified again."""
        try:
            user = self.credentials.update_profile(
                user_id,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
            )
            return AuthResult(success=True, user=user)

        except AuthError as e:
            logger.info(f"Profile update failed for user {user_id}: {e.kind.value}")
            return AuthResult.failed(e)
