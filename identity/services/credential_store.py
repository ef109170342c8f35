"""
User credential storage and management.

Wraps the storage backend with email normalization, password hashing and
the verification / activation flags. No token or code logic lives here.
"""

import logging
from typing import Optional, List

from ..auth.password import (
    PasswordHandler,
    normalize_email,
    normalize_phone,
    is_strong_password,
)
from ..errors import InvalidRequest, UserNotFound, InvalidCredentials
from ..models import User, new_id, utcnow_iso
from ..storage import AuthStorage

logger = logging.getLogger(__name__)

ROLES = ("user", "admin")


class CredentialStore:
    """
    User records keyed by user id, unique by normalized email.

    Safe for concurrent use: every method is a single storage primitive or
    a read followed by one.
    """

    def __init__(self, storage: AuthStorage, password_handler: Optional[PasswordHandler] = None):
        """
        Initialize credential store.

        Args:
            storage: Storage backend
            password_handler: bcrypt handler (default: 12 rounds)
        """
        self.storage = storage
        self.password_handler = password_handler or PasswordHandler()

    def create(
        self,
        email: str,
        password: str,
        phone: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: str = "user"
    ) -> User:
        """
        Create a new user.

        Args:
            email: Email address (will be normalized)
            password: Plain text password, hashed before storage
            phone: Optional phone number with country code
            first_name: Optional first name
            last_name: Optional last name
            role: "user" or "admin"

        Returns:
            Created User object

        Raises:
            InvalidRequest: Malformed email/phone, weak password, unknown role
            DuplicateEmail: A user with this email already exists
        """
        normalized_email = normalize_email(email)
        if not normalized_email:
            raise InvalidRequest("Invalid email address")

        if not is_strong_password(password):
            raise InvalidRequest(
                "Password must be 8 to 72 bytes long and contain "
                "upper-case, lower-case and numeric characters"
            )

        normalized_phone = None
        if phone:
            normalized_phone = normalize_phone(phone)
            if not normalized_phone:
                raise InvalidRequest("Invalid phone number")

        if role not in ROLES:
            raise InvalidRequest(f"Invalid role: {role}")

        user = User(
            user_id=new_id(),
            email=normalized_email,
            password_hash=self.password_handler.hash(password),
            phone=normalized_phone,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )

        self.storage.insert_user(user)
        logger.info(f"Created user: {normalized_email}")
        return user

    def find_by_email(self, email: str) -> User:
        """
        Get user by email.

        Raises:
            UserNotFound: No user with this email
        """
        normalized = normalize_email(email)
        user = self.storage.get_user_by_email(normalized) if normalized else None
        if user is None:
            raise UserNotFound()
        return user

    def get_by_id(self, user_id: str) -> User:
        """
        Get user by user ID.

        Raises:
            UserNotFound: No user with this id
        """
        user = self.storage.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def list_users(self, limit: int = 10, offset: int = 0) -> List[User]:
        """Get a page of users, oldest first."""
        if limit < 1 or offset < 0:
            raise InvalidRequest("limit must be positive and offset non-negative")
        return self.storage.list_users(limit, offset)

    def update_profile(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None
    ) -> User:
        """
        Update profile fields. Fields left as None are unchanged.

        A new phone number starts out unverified.

        Raises:
            InvalidRequest: Malformed phone number
            UserNotFound: No user with this id
        """
        user = self.get_by_id(user_id)
        fields = {}

        if first_name is not None:
            fields["first_name"] = first_name
        if last_name is not None:
            fields["last_name"] = last_name
        if phone is not None:
            normalized_phone = normalize_phone(phone)
            if not normalized_phone:
                raise InvalidRequest("Invalid phone number")
            if normalized_phone != user.phone:
                fields["phone"] = normalized_phone
                fields["phone_verified"] = False

        if not fields:
            return user

        updated = self.storage.update_user(user_id, **fields)
        if updated is None:
            raise UserNotFound()
        logger.info(f"Updated profile for user {user_id}: {sorted(fields)}")
        return updated

    def verify_password(self, user: Optional[User], password: str) -> bool:
        """
        Verify a user's password.

        With user=None a dummy hash is checked instead, so unknown accounts
        take as long as wrong passwords. A correct password stored with other
        bcrypt rounds is rehashed with the current rounds.
        """
        if user is None:
            return self.password_handler.burn(password)

        if not self.password_handler.verify(password, user.password_hash):
            return False

        if self.password_handler.needs_rehash(user.password_hash):
            self.storage.update_user(
                user.user_id, password_hash=self.password_handler.hash(password)
            )
            logger.info(f"Rehashed password for: {user.email}")
        return True

    def mark_verified(self, user_id: str, channel: str) -> User:
        """
        Set the verified flag backing a channel.

        email -> email_verified; sms and chat -> phone_verified.
        """
        field = "email_verified" if channel == "email" else "phone_verified"
        user = self.storage.update_user(user_id, **{field: True})
        if user is None:
            raise UserNotFound()
        logger.info(f"Marked {field} for user {user_id}")
        return user

    def set_active(self, user_id: str, active: bool) -> User:
        """Activate or soft-deactivate a user."""
        user = self.storage.update_user(user_id, is_active=active)
        if user is None:
            raise UserNotFound()
        logger.info(f"User {user_id} {'activated' if active else 'deactivated'}")
        return user

    def change_password(self, user_id: str, current_password: str, new_password: str) -> User:
        """
        Change a user's password.

        Raises:
            InvalidCredentials: Current password is incorrect
            InvalidRequest: New password is too weak
        """
        user = self.get_by_id(user_id)
        if not self.verify_password(user, current_password):
            raise InvalidCredentials("Current password is incorrect")

        if not is_strong_password(new_password):
            raise InvalidRequest("New password is too weak or longer than 72 bytes")

        updated = self.storage.update_user(
            user_id, password_hash=self.password_handler.hash(new_password)
        )
        if updated is None:
            raise UserNotFound()
        logger.info(f"Password changed for: {user.email}")
        return updated

    def record_login(self, user_id: str) -> Optional[User]:
        """Record a user login timestamp."""
        return self.storage.update_user(user_id, last_login=utcnow_iso())
