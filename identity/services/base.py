"""
Shared service context.

The ServiceContext builds and holds the storage backend, the three core
components and the AuthGateway. The HTTP API and the MCP server share one
context per process, so both front ends see the same users and sessions.
"""

import time
import logging
from typing import Optional, Callable
from dataclasses import dataclass, field

from ..auth import JWTHandler, PasswordHandler, SecretDigester
from ..config import Config, load_config
from ..errors import UserNotFound
from ..storage import AuthStorage, create_storage
from .auth_gateway import AuthGateway
from .credential_store import CredentialStore
from .delivery_service import DeliveryService
from .token_service import TokenService, TokenReuseEvent
from .verification_service import VerificationCodeManager

logger = logging.getLogger(__name__)

# Records are purged this long after they expire
PURGE_GRACE_SECONDS = 3600


@dataclass
class ServiceContext:
    """
    Dependency container for the authentication core.

    All services are wired here; front ends only talk to `gateway` (and
    `delivery` to send codes out of band).
    """
    config: Config
    storage: AuthStorage
    credentials: CredentialStore
    codes: VerificationCodeManager
    tokens: TokenService
    gateway: AuthGateway
    clock: Callable[[], float] = time.time
    _delivery: Optional[DeliveryService] = field(default=None, repr=False)

    @property
    def delivery(self) -> DeliveryService:
        """Lazy-loaded delivery service."""
        if self._delivery is None:
            self._delivery = DeliveryService(self.config.delivery)
        return self._delivery

    @classmethod
    def create(
        cls,
        config: Optional[Config] = None,
        clock: Optional[Callable[[], float]] = None,
        storage: Optional[AuthStorage] = None,
        on_token_reuse: Optional[Callable[[TokenReuseEvent], None]] = None
    ) -> "ServiceContext":
        """
        Factory method to create a ServiceContext with all dependencies.

        Args:
            config: Optional config (loads from env if not provided)
            clock: Optional time source shared by every component
            storage: Optional storage backend (built from config if not provided)
            on_token_reuse: Optional callback for refresh token reuse events

        Returns:
            Configured ServiceContext
        """
        cfg = config or load_config()
        clock = clock or time.time
        storage = storage or create_storage(cfg.storage)
        policy = cfg.auth

        digester = SecretDigester(policy.secret_key)
        credentials = CredentialStore(storage, PasswordHandler(rounds=policy.bcrypt_rounds))
        codes = VerificationCodeManager(storage, digester, policy, clock=clock)
        tokens = TokenService(
            storage,
            JWTHandler(policy.secret_key, access_ttl=policy.access_token_ttl, clock=clock),
            digester,
            policy,
            user_loader=storage.get_user_by_id,
            clock=clock,
            on_token_reuse=on_token_reuse,
        )
        gateway = AuthGateway(credentials, codes, tokens, policy)

        logger.info(f"Service context created ({cfg.storage.backend} storage)")
        return cls(
            config=cfg,
            storage=storage,
            credentials=credentials,
            codes=codes,
            tokens=tokens,
            gateway=gateway,
            clock=clock,
        )

    def purge_expired(self) -> int:
        """Delete codes and refresh tokens that expired over an hour ago."""
        return self.storage.purge_expired(self.clock() - PURGE_GRACE_SECONDS)

    def create_user(
        self,
        email: str,
        password: str,
        phone: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        admin: bool = False,
        verified: bool = False
    ):
        """Provision a user directly, bypassing registration."""
        user = self.credentials.create(
            email=email,
            password=password,
            phone=phone,
            first_name=first_name,
            last_name=last_name,
            role="admin" if admin else "user",
        )
        if verified:
            user = self.credentials.mark_verified(user.user_id, "email")
            if user.phone:
                user = self.credentials.mark_verified(user.user_id, "sms")
        return user

    def find_user(self, email: str):
        """Look up a user by email, None if unknown."""
        try:
            return self.credentials.find_by_email(email)
        except UserNotFound:
            return None

    def close(self):
        """Clean up resources."""
        self.storage.close()


# Process-wide context shared by the HTTP and MCP front ends
_context: Optional[ServiceContext] = None


def get_context() -> ServiceContext:
    """
    Get or create the service context singleton.

    This initializes all services on first call.
    """
    global _context

    if _context is None:
        logger.info("Initializing services...")
        _context = ServiceContext.create()
        logger.info("Services initialized successfully")

    return _context


def set_context(context: Optional[ServiceContext]):
    """Install a pre-built context (used by main.py and tests)."""
    global _context
    _context = context


def close_context():
    """Close and cleanup the shared context."""
    global _context
    if _context:
        _context.close()
        _context = None
        logger.info("Services closed")
