from __future__ import annotations

import threading
import time
from typing import Callable, Optional
from urllib.parse import urlparse, urlunparse

from showroom.config import AppEnv, RateLimitBackend, get_settings, reset_settings_cache
from showroom.logging import get_logger
from showroom.service.accounts import AdminAccountService
from showroom.service.auth import RequestAuthenticator
from showroom.service.catalog import CatalogService
from showroom.service.cookies import CookieStore
from showroom.service.csrf import CsrfGuard
from showroom.service.rate_limit import (
    FixedWindowRateLimiter,
    RateLimitResult,
    RateLimitStore,
    RateLimitSweeper,
)
from showroom.service.tokens import TokenCodec
from showroom.storage.memory import MemoryRateLimitStore, MemoryStore
from showroom.storage.redis_cache import RedisRateLimitStore

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Replace the password in a connection URL with ``***`` for logging."""
    if not url:
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return "***url_parse_error***"
    if not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    netloc = f"{parsed.username or ''}:***@{netloc}"
    return urlunparse(
        (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
    )


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self, *, clock: Callable[[], float] = time.time):
        self.settings = get_settings()
        # Raises ConfigurationError in production; fills development defaults otherwise
        self.config_problems = self.settings.validate_startup()
        logger.info(
            "runtime_init_started",
            app_env=self.settings.app_env.value,
            rate_limit_backend=self.settings.rate_limit_backend.value,
        )

        self.store = MemoryStore()
        self.rate_limit_store = self._build_rate_limit_store()
        self.limiter = FixedWindowRateLimiter(self.rate_limit_store, clock=clock)
        self.sweeper = RateLimitSweeper(
            self.limiter, interval_seconds=self.settings.rate_limit_sweep_interval_seconds
        )

        self.codec = TokenCodec.from_settings(self.settings, clock=clock)
        self.cookies = CookieStore(secure=self.settings.is_production)
        self.csrf = CsrfGuard(self.cookies)
        self.auth = RequestAuthenticator(self.csrf, self.cookies, self.codec)
        self.accounts = AdminAccountService(self.store, self.settings)
        self.catalog = CatalogService(self.store)

    def _build_rate_limit_store(self) -> RateLimitStore:
        if self.settings.rate_limit_backend != RateLimitBackend.REDIS:
            return MemoryRateLimitStore()
        store = RedisRateLimitStore(self.settings.redis_url)
        try:
            store.verify_connection()
        except Exception as exc:
            if self.settings.is_production:
                raise RuntimeError(
                    "Redis is required for shared rate limits; start Redis or set "
                    "RATE_LIMIT_BACKEND=memory for a single instance."
                ) from exc
            logger.warning(
                "redis_disabled_fallback",
                redis_url=_mask_url_password(self.settings.redis_url),
                error=str(exc),
                message="Running without Redis; rate limits are in-memory only.",
            )
            return MemoryRateLimitStore()
        logger.info("redis_rate_limit_store_ready", redis_url=_mask_url_password(self.settings.redis_url))
        return store

    async def close(self) -> None:
        await self.sweeper.stop()
        if isinstance(self.rate_limit_store, RedisRateLimitStore):
            await self.rate_limit_store.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Uses double-checked locking: the first check skips the lock once the
    runtime exists, the second prevents two threads creating it at once.
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests(*, clock: Callable[[], float] = time.time) -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        reset_settings_cache()
        settings = get_settings()
        if settings.app_env != AppEnv.TEST:
            raise RuntimeError("runtime reset is only allowed with APP_ENV=test")
        runtime = Runtime(clock=clock)
        return runtime


async def check_rate_limit(
    runtime: Runtime, key: str, limit: int, window_seconds: int
) -> RateLimitResult:
    return await runtime.limiter.check(key, limit, window_seconds)
