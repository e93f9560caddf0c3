from __future__ import annotations

import re
from datetime import datetime
from typing import Any, List, Literal, Optional
from urllib.parse import urlparse
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_VALID_ERROR_CODES = frozenset({
    "unauthorized",
    "forbidden",
    "csrf_invalid",
    "not_found",
    "rate_limited",
    "validation_error",
    "conflict",
    "server_error",
})

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 100
_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
    (re.compile(r"[^a-zA-Z0-9]"), "Password must contain at least one special character"),
)


class ErrorBody(BaseModel):
    """Error envelope body with stable code values."""

    code: str = Field(..., description="Stable error code")
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    """API envelope for catalog payloads and every error."""

    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys to match the browser client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _reject_explicit_nulls(model: BaseModel, names: tuple[str, ...]) -> None:
    """Partial updates may omit these fields but never clear them."""
    for name in names:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{to_camel(name)} cannot be null")


def _validate_optional_url(value: Optional[str]) -> Optional[str]:
    """Allow empty/None, otherwise require an absolute http(s) URL."""
    if value is None or value == "":
        return value
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Invalid URL")
    return value


# -- auth ------------------------------------------------------------------


class CsrfTokenResponse(CamelModel):
    csrf_token: str


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=100)
    remember_me: bool = False


class UserResponse(CamelModel):
    id: str
    username: str
    role: str
    created_at: Optional[datetime] = None


class LoginResponse(CamelModel):
    user: UserResponse
    message: str


class MessageResponse(CamelModel):
    message: str


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    confirm_password: str = Field(..., min_length=1)

    @field_validator("new_password")
    @classmethod
    def _validate_strength(cls, value: str) -> str:
        for pattern, message in _PASSWORD_RULES:
            if not pattern.search(value):
                raise ValueError(message)
        return value

    @model_validator(mode="after")
    def _passwords_match(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


# -- products --------------------------------------------------------------


class ProductFields(CamelModel):
    badge: Optional[str] = Field(default=None, max_length=20)
    thumbnails: Optional[List[str]] = None
    detail_images: Optional[List[str]] = None
    image_url: Optional[str] = None
    store_url: Optional[str] = None
    featured: Optional[bool] = None

    @field_validator("thumbnails", "detail_images")
    @classmethod
    def _non_empty_paths(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is not None and any(not item for item in value):
            raise ValueError("image paths must not be empty")
        return value

    @field_validator("store_url")
    @classmethod
    def _validate_store_url(cls, value: Optional[str]) -> Optional[str]:
        return _validate_optional_url(value)


class ProductCreateRequest(ProductFields):
    category: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    tags: List[str] = Field(default_factory=list)
    is_active: bool = True


class ProductUpdateRequest(ProductFields):
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _required_fields_not_cleared(self) -> "ProductUpdateRequest":
        _reject_explicit_nulls(
            self,
            (
                "category",
                "name",
                "description",
                "tags",
                "thumbnails",
                "detail_images",
                "featured",
                "is_active",
            ),
        )
        return self


class ProductResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    name: str
    description: str
    category: str
    tags: List[str]
    badge: Optional[str] = None
    thumbnails: List[str]
    detail_images: List[str]
    image_url: Optional[str] = None
    store_url: Optional[str] = None
    featured: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime


# -- banners ---------------------------------------------------------------

ContentPosition = Literal[
    "top-left",
    "top-center",
    "top-right",
    "middle-left",
    "middle-center",
    "middle-right",
    "bottom-left",
    "bottom-center",
    "bottom-right",
]


class BannerFields(CamelModel):
    title: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    content_position: Optional[ContentPosition] = None
    title_color: Optional[str] = None
    description_color: Optional[str] = None
    text_color: Optional[str] = None
    link_url: Optional[str] = None
    button_text: Optional[str] = Field(default=None, max_length=50)
    button_url: Optional[str] = None
    show_button: Optional[bool] = None

    @field_validator("title_color", "description_color", "text_color")
    @classmethod
    def _validate_color(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _HEX_COLOR.match(value):
            raise ValueError("Invalid hex color")
        return value

    @field_validator("link_url", "button_url")
    @classmethod
    def _validate_urls(cls, value: Optional[str]) -> Optional[str]:
        return _validate_optional_url(value)


class BannerCreateRequest(BannerFields):
    type: Literal["main", "promotion"]
    image_url: str = Field(..., min_length=1)
    position: int = Field(..., ge=0)
    is_active: bool = True


class BannerUpdateRequest(BannerFields):
    type: Optional[Literal["main", "promotion"]] = None
    image_url: Optional[str] = Field(default=None, min_length=1)
    position: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _required_fields_not_cleared(self) -> "BannerUpdateRequest":
        _reject_explicit_nulls(
            self, ("type", "image_url", "position", "show_button", "is_active")
        )
        return self


class BannerResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

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
    show_button: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
