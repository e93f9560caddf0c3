from __future__ import annotations

import asyncio
import contextlib
import math
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Protocol

from showroom.logging import get_logger
from showroom.storage.models import RateLimitEntry

logger = get_logger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60

# Checked in order; the first header present wins
_CLIENT_IP_HEADERS = ("x-forwarded-for", "cf-connecting-ip", "x-real-ip")


class RateLimitStore(Protocol):
    async def hit(self, key: str, window_seconds: int, now: float) -> RateLimitEntry:
        """Count one request, opening a fresh window when none is live.

        Must be atomic for every caller sharing the store.
        """
        ...

    async def delete(self, key: str) -> None: ...

    async def delete_expired(self, now: float) -> int: ...


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        """Whole seconds until the window resets, never less than one."""
        return max(1, math.ceil(self.reset_at - now))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining)),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


def client_ip(headers: Mapping[str, str]) -> str:
    """Best-effort client address from proxy headers.

    The headers are trusted as sent. Without a proxy in front every direct
    client falls into the shared ``"unknown"`` bucket.
    """
    for name in _CLIENT_IP_HEADERS:
        value = headers.get(name)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if candidate:
            return candidate
    return "unknown"


class FixedWindowRateLimiter:
    """Counts requests per identifier in fixed windows.

    The first request opens a window of ``window_seconds``; every request in
    that window increments the count, and requests past ``limit`` are denied
    until the window ends. Storage is pluggable so windows can live in Redis
    when several instances serve the same site.
    """

    def __init__(
        self, store: RateLimitStore, *, clock: Callable[[], float] = time.time
    ) -> None:
        self.store = store
        self._clock = clock
        self._lock = asyncio.Lock()

    def now(self) -> float:
        return self._clock()

    async def check(self, identifier: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        if limit <= 0:
            return RateLimitResult(allowed=True, limit=limit, remaining=0, reset_at=now)
        if window_seconds <= 0:
            logger.warning(
                "rate_limit_invalid_window",
                identifier=identifier,
                window_seconds=window_seconds,
                message="Invalid rate limit window_seconds; defaulting to 60 seconds",
            )
            window_seconds = 60

        async with self._lock:
            entry = await self.store.hit(identifier, window_seconds, now)

        if entry.count > limit:
            return RateLimitResult(allowed=False, limit=limit, remaining=0, reset_at=entry.reset_at)
        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=limit - entry.count,
            reset_at=entry.reset_at,
        )

    async def reset(self, identifier: str) -> None:
        async with self._lock:
            await self.store.delete(identifier)

    async def sweep(self) -> int:
        """Drop every window that has already ended."""
        async with self._lock:
            removed = await self.store.delete_expired(self._clock())
        if removed:
            logger.debug("rate_limit_sweep", removed=removed)
        return removed


class RateLimitSweeper:
    """Background task that periodically sweeps expired rate-limit windows."""

    def __init__(
        self,
        limiter: FixedWindowRateLimiter,
        *,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self.limiter = limiter
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("rate_limit_sweeper_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                try:
                    await self.limiter.sweep()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.warning("rate_limit_sweep_failed", error=str(exc))
        except asyncio.CancelledError:
            logger.info("rate_limit_sweeper_cancelled")
            raise
