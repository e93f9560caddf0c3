from __future__ import annotations

import threading
import uuid
from dataclasses import fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from showroom.logging import get_logger
from showroom.storage.errors import ConstraintViolation
from showroom.storage.models import AdminUser, Banner, Product, RateLimitEntry


class MemoryRateLimitStore:
    """Process-local map of identifier to its current window."""

    def __init__(self) -> None:
        self.entries: Dict[str, RateLimitEntry] = {}

    async def hit(self, key: str, window_seconds: int, now: float) -> RateLimitEntry:
        # No await between read and write, so the event loop cannot interleave callers
        entry = self.entries.get(key)
        if entry is None or now >= entry.reset_at:
            entry = RateLimitEntry(key=key, count=0, reset_at=now + window_seconds)
            self.entries[key] = entry
        entry.count += 1
        return RateLimitEntry(key=key, count=entry.count, reset_at=entry.reset_at)

    async def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    async def delete_expired(self, now: float) -> int:
        expired = [key for key, entry in self.entries.items() if entry.reset_at <= now]
        for key in expired:
            self.entries.pop(key, None)
        return len(expired)


class MemoryStore:
    """In-memory backing store for admin accounts and the catalog."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.admin_users: Dict[str, AdminUser] = {}
        self.products: Dict[str, Product] = {}
        self.banners: Dict[str, Banner] = {}
        # RLock so nested helpers can re-enter
        self._data_lock = threading.RLock()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # -- admin users -------------------------------------------------------

    def count_admin_users(self) -> int:
        with self._data_lock:
            return len(self.admin_users)

    def create_admin_user(self, username: str, password_hash: str, *, role: str = "admin") -> AdminUser:
        with self._data_lock:
            if any(user.username == username for user in self.admin_users.values()):
                raise ConstraintViolation("username already exists", {"username": username})
            user = AdminUser.new(username, password_hash, role=role)
            self.admin_users[user.id] = user
            self.logger.info("admin_user_created", user_id=user.id, username=username, role=role)
            return user

    def get_admin_user(self, user_id: str) -> Optional[AdminUser]:
        with self._data_lock:
            return self.admin_users.get(user_id)

    def get_admin_user_by_username(self, username: str) -> Optional[AdminUser]:
        with self._data_lock:
            for user in self.admin_users.values():
                if user.username == username:
                    return user
            return None

    def update_admin_password(self, user_id: str, password_hash: str) -> bool:
        with self._data_lock:
            user = self.admin_users.get(user_id)
            if not user:
                return False
            user.password_hash = password_hash
            return True

    # -- products ----------------------------------------------------------

    def list_products(self) -> List[Product]:
        with self._data_lock:
            return sorted(self.products.values(), key=lambda p: p.created_at, reverse=True)

    def get_product(self, product_id: str) -> Optional[Product]:
        with self._data_lock:
            return self.products.get(product_id)

    def create_product(self, values: Dict[str, Any]) -> Product:
        with self._data_lock:
            product = Product(id=str(uuid.uuid4()), **_known(Product, values))
            self.products[product.id] = product
            return product

    def update_product(self, product_id: str, updates: Dict[str, Any]) -> Optional[Product]:
        with self._data_lock:
            current = self.products.get(product_id)
            if not current:
                return None
            updated = replace(current, **_known(Product, updates), updated_at=self._now())
            self.products[product_id] = updated
            return updated

    def delete_product(self, product_id: str) -> bool:
        with self._data_lock:
            return self.products.pop(product_id, None) is not None

    # -- banners -----------------------------------------------------------

    def list_banners(self) -> List[Banner]:
        with self._data_lock:
            return sorted(self.banners.values(), key=lambda b: (b.position, b.created_at))

    def get_banner(self, banner_id: str) -> Optional[Banner]:
        with self._data_lock:
            return self.banners.get(banner_id)

    def create_banner(self, values: Dict[str, Any]) -> Banner:
        with self._data_lock:
            banner = Banner(id=str(uuid.uuid4()), **_known(Banner, values))
            self.banners[banner.id] = banner
            return banner

    def update_banner(self, banner_id: str, updates: Dict[str, Any]) -> Optional[Banner]:
        with self._data_lock:
            current = self.banners.get(banner_id)
            if not current:
                return None
            updated = replace(current, **_known(Banner, updates), updated_at=self._now())
            self.banners[banner_id] = updated
            return updated

    def delete_banner(self, banner_id: str) -> bool:
        with self._data_lock:
            return self.banners.pop(banner_id, None) is not None


_PROTECTED_FIELDS = {"id", "created_at", "updated_at"}


def _known(model: type, values: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only writable dataclass fields of ``model``."""
    allowed = {f.name for f in fields(model)} - _PROTECTED_FIELDS
    return {key: value for key, value in values.items() if key in allowed}
