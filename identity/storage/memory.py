"""
In-memory storage backend.

Used by tests and single-process development setups. Each primitive runs
under the backend's own lock, which plays the role a row-level transaction
plays in a database: callers never hold it across primitives.
"""

import logging
import threading
from copy import deepcopy
from dataclasses import replace
from typing import Optional, List, Tuple

from ..errors import DuplicateEmail
from ..models import User, VerificationCode, RefreshToken, utcnow_iso
from .base import AuthStorage

logger = logging.getLogger(__name__)


class InMemoryStorage(AuthStorage):
    """Dictionary-backed AuthStorage."""

    def __init__(self):
        self._lock = threading.Lock()
        self._users: dict[str, User] = {}
        self._emails: dict[str, str] = {}  # email -> user_id
        self._codes: dict[str, VerificationCode] = {}
        self._tokens: dict[str, RefreshToken] = {}
        self._token_hashes: dict[str, str] = {}  # token_hash -> token_id

    # Users

    def insert_user(self, user: User) -> User:
        with self._lock:
            if user.email in self._emails:
                raise DuplicateEmail()
            self._users[user.user_id] = deepcopy(user)
            self._emails[user.email] = user.user_id
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            user_id = self._emails.get(email)
            user = self._users.get(user_id) if user_id else None
            return deepcopy(user) if user else None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return deepcopy(user) if user else None

    def update_user(self, user_id: str, **fields) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = replace(user, updated_at=utcnow_iso(), **fields)
            self._users[user_id] = updated
            return deepcopy(updated)

    def list_users(self, limit: int, offset: int = 0) -> List[User]:
        with self._lock:
            # Insertion order is creation order
            page = list(self._users.values())[offset:offset + limit]
            return [deepcopy(u) for u in page]

    # Verification codes

    def _codes_for(self, user_id: str, channel: str) -> List[VerificationCode]:
        codes = [
            c for c in self._codes.values()
            if c.user_id == user_id and c.channel == channel
        ]
        return sorted(codes, key=lambda c: c.created_at)

    def insert_code(
        self,
        code: VerificationCode,
        window_start: float,
        limit: int
    ) -> Tuple[bool, Optional[float]]:
        with self._lock:
            existing = self._codes_for(code.user_id, code.channel)
            recent = [c.created_at for c in existing if c.created_at >= window_start]
            if len(recent) >= limit:
                return False, min(recent)

            for old in existing:
                if not old.used:
                    old.used = True
            self._codes[code.code_id] = deepcopy(code)
            return True, None

    def get_active_code(self, user_id: str, channel: str) -> Optional[VerificationCode]:
        with self._lock:
            unused = [c for c in self._codes_for(user_id, channel) if not c.used]
            return deepcopy(unused[-1]) if unused else None

    def get_latest_code(self, user_id: str, channel: str) -> Optional[VerificationCode]:
        with self._lock:
            codes = self._codes_for(user_id, channel)
            return deepcopy(codes[-1]) if codes else None

    def mark_code_used(self, code_id: str) -> bool:
        with self._lock:
            code = self._codes.get(code_id)
            if code is None or code.used:
                return False
            code.used = True
            return True

    # Refresh tokens

    def insert_refresh_token(self, token: RefreshToken) -> RefreshToken:
        with self._lock:
            self._tokens[token.token_id] = deepcopy(token)
            self._token_hashes[token.token_hash] = token.token_id
        return token

    def get_refresh_token_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        with self._lock:
            token_id = self._token_hashes.get(token_hash)
            token = self._tokens.get(token_id) if token_id else None
            return deepcopy(token) if token else None

    def get_refresh_token(self, token_id: str) -> Optional[RefreshToken]:
        with self._lock:
            token = self._tokens.get(token_id)
            return deepcopy(token) if token else None

    def rotate_refresh_token(self, token_id: str, successor: RefreshToken) -> bool:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None or token.revoked:
                return False
            token.revoked = True
            token.replaced_by = successor.token_id
            self._tokens[successor.token_id] = deepcopy(successor)
            self._token_hashes[successor.token_hash] = successor.token_id
            return True

    def revoke_refresh_token(self, token_id: str) -> bool:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None or token.revoked:
                return False
            token.revoked = True
            return True

    def _revoke_where(self, predicate) -> int:
        count = 0
        for token in self._tokens.values():
            if not token.revoked and predicate(token):
                token.revoked = True
                count += 1
        return count

    def revoke_family(self, family_id: str) -> int:
        with self._lock:
            return self._revoke_where(lambda t: t.family_id == family_id)

    def revoke_user_tokens(self, user_id: str) -> int:
        with self._lock:
            return self._revoke_where(lambda t: t.user_id == user_id)

    def list_family(self, family_id: str) -> List[RefreshToken]:
        with self._lock:
            family = [t for t in self._tokens.values() if t.family_id == family_id]
            return [deepcopy(t) for t in sorted(family, key=lambda t: t.created_at)]

    # Maintenance

    def purge_expired(self, before: float) -> int:
        with self._lock:
            stale_codes = [k for k, c in self._codes.items() if c.expires_at < before]
            for key in stale_codes:
                del self._codes[key]

            stale_tokens = [k for k, t in self._tokens.items() if t.expires_at < before]
            for key in stale_tokens:
                token = self._tokens.pop(key)
                self._token_hashes.pop(token.token_hash, None)

        removed = len(stale_codes) + len(stale_tokens)
        if removed:
            logger.info(f"Purged {len(stale_codes)} codes and {len(stale_tokens)} refresh tokens")
        return removed
