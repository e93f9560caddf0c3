from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RateLimitEntry:
    key: str
    count: int
    reset_at: float


@dataclass
class AdminUser:
    id: str
    username: str
    password_hash: str
    role: str = "admin"
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def new(cls, username: str, password_hash: str, *, role: str = "admin") -> "AdminUser":
        return cls(id=str(uuid.uuid4()), username=username, password_hash=password_hash, role=role)


@dataclass
class Product:
    id: str
    name: str
    description: str
    category: str
    tags: List[str] = field(default_factory=list)
    badge: Optional[str] = None
    thumbnails: List[str] = field(default_factory=list)
    detail_images: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    store_url: Optional[str] = None
    featured: bool = False
    is_active: bool = True
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass
class Banner:
    id: str
    type: str
    image_url: str
    position: int
    title: Optional[str] = None
    description: Optional[str] = None
    content_position: Optional[str] = None
    title_color: Optional[str] = None
    description_color: Optional[str] = None
    text_color: Optional[str] = None
    link_url: Optional[str] = None
    button_text: Optional[str] = None
    button_url: Optional[str] = None
    show_button: bool = False
    is_active: bool = True
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
