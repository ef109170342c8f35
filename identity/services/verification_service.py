"""
One-time verification codes.

Codes are scoped to a (user, channel) pair. Issuing a code supersedes any
earlier unused code for the pair; consuming one is a single conditional
update on the `used` flag, so concurrent submissions of the same correct
code produce exactly one success.
"""

import time
import math
import logging
from typing import Optional, Callable

from ..auth.digest import SecretDigester, generate_numeric_code
from ..config import AuthPolicy, CHANNELS
from ..errors import (
    CodeInvalid,
    CodeExpired,
    CodeAlreadyUsed,
    RateLimited,
    InvalidRequest,
)
from ..models import User, VerificationCode, CodeHandle, new_id
from ..storage import AuthStorage

logger = logging.getLogger(__name__)

CODE_PURPOSE = "verification-code"


class VerificationCodeManager:
    """
    Issues and consumes verification codes.

    Handles:
    - Random numeric codes of the configured length
    - Expiry (code_ttl) and sliding-window rate limiting per (user, channel)
    - Single-use consumption
    """

    def __init__(
        self,
        storage: AuthStorage,
        digester: SecretDigester,
        policy: AuthPolicy,
        clock: Optional[Callable[[], float]] = None
    ):
        self.storage = storage
        self.digester = digester
        self.policy = policy
        self._clock = clock or time.time

    @staticmethod
    def _check_channel(channel: str):
        if channel not in CHANNELS:
            raise InvalidRequest(f"Unknown channel: {channel}")

    @staticmethod
    def destination_for(user: User, channel: str) -> Optional[str]:
        """Address a code for this channel is delivered to."""
        return user.email if channel == "email" else user.phone

    def issue(self, user: User, channel: str) -> CodeHandle:
        """
        Issue a new code for (user, channel).

        Args:
            user: Code owner
            channel: "email", "sms" or "chat"

        Returns:
            CodeHandle with the plaintext code, for out-of-band delivery

        Raises:
            InvalidRequest: Unknown channel or no destination on file
            RateLimited: Too many codes for the pair within the window
        """
        self._check_channel(channel)

        destination = self.destination_for(user, channel)
        if not destination:
            raise InvalidRequest(f"User has no destination for channel {channel}")

        now = self._clock()
        plaintext = generate_numeric_code(self.policy.code_length)
        record = VerificationCode(
            code_id=new_id(),
            user_id=user.user_id,
            channel=channel,
            code_hash=self.digester.digest(plaintext, CODE_PURPOSE),
            expires_at=now + self.policy.code_ttl,
            created_at=now,
        )

        inserted, oldest = self.storage.insert_code(
            record,
            window_start=now - self.policy.rate_limit_window,
            limit=self.policy.rate_limit_max,
        )
        if not inserted:
            retry_after = max(1, math.ceil(oldest + self.policy.rate_limit_window - now))
            logger.info(f"Verification code rate limit hit for user {user.user_id} ({channel})")
            raise RateLimited(retry_after=retry_after)

        logger.info(f"Issued {channel} verification code for user {user.user_id}")
        return CodeHandle(
            user_id=user.user_id,
            channel=channel,
            code=plaintext,
            expires_at=record.expires_at,
            destination=destination,
        )

    def consume(self, user_id: str, channel: str, submitted: str) -> None:
        """
        Consume the active code for (user, channel).

        Returns normally when this call consumed the code.

        Raises:
            CodeInvalid: No matching code, or a superseded (stale) code
            CodeExpired: The active code is past its expiry
            CodeAlreadyUsed: The matching code was already consumed
        """
        self._check_channel(channel)
        submitted = (submitted or "").strip()

        active = self.storage.get_active_code(user_id, channel)

        if active is None:
            latest = self.storage.get_latest_code(user_id, channel)
            if latest and self.digester.matches(submitted, latest.code_hash, CODE_PURPOSE):
                raise CodeAlreadyUsed()
            raise CodeInvalid()

        if active.is_expired(self._clock()):
            raise CodeExpired()

        if not self.digester.matches(submitted, active.code_hash, CODE_PURPOSE):
            raise CodeInvalid()

        if not self.storage.mark_code_used(active.code_id):
            raise CodeAlreadyUsed()

        logger.info(f"Consumed {channel} verification code for user {user_id}")
