from __future__ import annotations

import threading
from typing import Optional, Protocol

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from showroom.config import DEFAULT_ADMIN_PASSWORD, DEFAULT_ADMIN_USERNAME, Settings
from showroom.logging import get_logger
from showroom.service.errors import NotFoundError, ValidationError
from showroom.storage.errors import ConstraintViolation
from showroom.storage.models import AdminUser

logger = get_logger(__name__)


class AdminStore(Protocol):
    def count_admin_users(self) -> int: ...

    def create_admin_user(
        self, username: str, password_hash: str, *, role: str = "admin"
    ) -> AdminUser: ...

    def get_admin_user(self, user_id: str) -> Optional[AdminUser]: ...

    def get_admin_user_by_username(self, username: str) -> Optional[AdminUser]: ...

    def update_admin_password(self, user_id: str, password_hash: str) -> bool: ...


class AdminAccountService:
    """Admin credential checks backed by argon2id hashes."""

    def __init__(self, store: AdminStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings
        self._pwd_hasher = PasswordHasher(type=Type.ID)
        # Verified against when the username is unknown so both failure paths cost the same
        self._dummy_hash = self._pwd_hasher.hash("showroom-unknown-user")
        self._bootstrap_lock = threading.Lock()

    def hash_password(self, password: str) -> str:
        return self._pwd_hasher.hash(password)

    def _verify(self, password_hash: str, password: str) -> bool:
        try:
            return self._pwd_hasher.verify(password_hash, password)
        except (InvalidHash, VerifyMismatchError, VerificationError):
            return False

    def initialize_default_admin(self) -> Optional[AdminUser]:
        """Create the configured admin account when no accounts exist yet.

        Safe to call from concurrent logins: only one caller creates the
        account and the rest return None.
        """
        if self.store.count_admin_users() > 0:
            return None
        with self._bootstrap_lock:
            if self.store.count_admin_users() > 0:
                return None
            username = self.settings.admin_username or DEFAULT_ADMIN_USERNAME
            password = self.settings.admin_password or DEFAULT_ADMIN_PASSWORD
            try:
                user = self.store.create_admin_user(
                    username, self.hash_password(password), role="admin"
                )
            except ConstraintViolation:
                # Another process sharing the store got there first
                return None
        logger.info("default_admin_initialized", user_id=user.id, username=username)
        return user

    def authenticate(self, username: str, password: str) -> Optional[AdminUser]:
        """Return the account when the credentials match, otherwise None.

        Unknown usernames and wrong passwords are indistinguishable to callers.
        """
        user = self.store.get_admin_user_by_username(username)
        if user is None:
            self._verify(self._dummy_hash, password)
            return None
        if not self._verify(user.password_hash, password):
            return None
        return user

    def change_password(self, user_id: str, current_password: str, new_password: str) -> AdminUser:
        user = self.store.get_admin_user(user_id)
        if not user:
            raise NotFoundError("user not found")
        if not self._verify(user.password_hash, current_password):
            raise ValidationError(
                "current password is incorrect", detail={"field": "currentPassword"}
            )
        self.store.update_admin_password(user.id, self.hash_password(new_password))
        return user
