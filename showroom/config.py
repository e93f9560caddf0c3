from __future__ import annotations

import os
import secrets
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from showroom.logging import get_logger
from showroom.service.errors import ConfigurationError

logger = get_logger(__name__)

PLACEHOLDER_JWT_SECRET = "default-secret-key-change-in-production"
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_PUBLIC_BASE_URL = "http://localhost:3000"
MIN_JWT_SECRET_LENGTH = 32
MIN_ADMIN_PASSWORD_LENGTH = 8

SESSION_TTL_PRODUCTION_SECONDS = 7 * 24 * 60 * 60
SESSION_TTL_DEVELOPMENT_SECONDS = 30 * 24 * 60 * 60
SESSION_TTL_EXTENDED_SECONDS = 90 * 24 * 60 * 60


class AppEnv(str, Enum):
    """Deployment environments recognised by the app."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TEST = "test"


class RateLimitBackend(str, Enum):
    """Where rate-limit windows are stored."""

    MEMORY = "memory"
    REDIS = "redis"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the site and its admin perimeter."""

    app_env: AppEnv = env_field(AppEnv.DEVELOPMENT, "APP_ENV")
    jwt_secret: str | None = env_field(None, "JWT_SECRET")
    admin_username: str | None = env_field(None, "ADMIN_USERNAME")
    admin_password: str | None = env_field(None, "ADMIN_PASSWORD")
    public_base_url: str | None = env_field(None, "PUBLIC_BASE_URL")
    cors_allow_origins: list[str] = env_field([], "CORS_ALLOW_ORIGINS")
    rate_limit_backend: RateLimitBackend = env_field(
        RateLimitBackend.MEMORY,
        "RATE_LIMIT_BACKEND",
        description="memory for single-instance deployments, redis to share windows across instances",
    )
    redis_url: str = env_field("redis://localhost:6379/0", "REDIS_URL")
    login_rate_limit: int = env_field(5, "LOGIN_RATE_LIMIT")
    login_rate_limit_window_seconds: int = env_field(15 * 60, "LOGIN_RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_sweep_interval_seconds: int = env_field(5 * 60, "RATE_LIMIT_SWEEP_INTERVAL_SECONDS")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("app_env", mode="before")
    @classmethod
    def _normalize_env(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def is_production(self) -> bool:
        return self.app_env == AppEnv.PRODUCTION

    @property
    def session_ttl_seconds(self) -> int:
        """Default session lifetime: one week in production, 30 days elsewhere."""
        if self.is_production:
            return SESSION_TTL_PRODUCTION_SECONDS
        return SESSION_TTL_DEVELOPMENT_SECONDS

    def validate_startup(self) -> list[str]:
        """Check secrets and admin bootstrap values before serving traffic.

        In production every problem is fatal and raises ConfigurationError.
        Elsewhere problems are logged, and unset values fall back to local
        development defaults so the site still boots.

        Returns:
            The list of problems found (empty when the configuration is sound).
        """
        problems: list[str] = []

        if not self.jwt_secret:
            if self.is_production:
                problems.append("JWT_SECRET is required in production")
        elif self.jwt_secret == PLACEHOLDER_JWT_SECRET:
            if self.is_production:
                problems.append("JWT_SECRET must be changed from default value in production")
        elif len(self.jwt_secret) < MIN_JWT_SECRET_LENGTH:
            problems.append(
                f"JWT_SECRET should be at least {MIN_JWT_SECRET_LENGTH} characters long"
            )

        if not self.admin_username:
            if self.is_production:
                problems.append("ADMIN_USERNAME is required in production")
        elif self.admin_username == DEFAULT_ADMIN_USERNAME and self.is_production:
            logger.warning("config_default_admin_username", admin_username=self.admin_username)

        if not self.admin_password:
            if self.is_production:
                problems.append("ADMIN_PASSWORD is required in production")
        elif self.admin_password == DEFAULT_ADMIN_PASSWORD:
            if self.is_production:
                problems.append("ADMIN_PASSWORD must be changed from default value in production")
            else:
                logger.warning("config_default_admin_password")
        elif len(self.admin_password) < MIN_ADMIN_PASSWORD_LENGTH:
            problems.append(
                f"ADMIN_PASSWORD should be at least {MIN_ADMIN_PASSWORD_LENGTH} characters long"
            )

        if not self.public_base_url:
            if self.is_production:
                problems.append("PUBLIC_BASE_URL is required in production")
        elif "localhost" in self.public_base_url and self.is_production:
            problems.append("PUBLIC_BASE_URL cannot be localhost in production")

        if problems:
            if self.is_production:
                logger.error("config_validation_failed", problems=problems)
                raise ConfigurationError(problems)
            logger.warning("config_validation_problems", problems=problems)

        if not self.jwt_secret:
            # Tokens signed with a per-process secret do not survive a restart
            self.jwt_secret = secrets.token_urlsafe(48)
            logger.warning("jwt_secret_generated", app_env=self.app_env.value)
        if not self.admin_username:
            self.admin_username = DEFAULT_ADMIN_USERNAME
        if not self.admin_password:
            self.admin_password = DEFAULT_ADMIN_PASSWORD
        if not self.public_base_url:
            self.public_base_url = DEFAULT_PUBLIC_BASE_URL
        return problems


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
