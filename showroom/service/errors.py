from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each exception class defines both an HTTP status_code and a stable
    error_code that clients can branch on:
    - validation_error (400)
    - unauthorized (401)
    - forbidden (403)
    - csrf_invalid (403)
    - not_found (404)
    - rate_limited (429)
    - server_error (500, emitted only for uncaught exceptions)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(ServiceError):
    """Access denied (403)."""
    status_code = 403
    error_code = "forbidden"


class CsrfError(ForbiddenError):
    """Double-submit CSRF tokens missing or mismatched (403)."""
    error_code = "csrf_invalid"


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "not_found"


class RateLimitedError(ServiceError):
    """Rate limit exceeded (429).

    Carries the window state so the boundary can emit Retry-After and
    X-RateLimit-* headers.
    """
    status_code = 429
    error_code = "rate_limited"

    def __init__(
        self,
        message: str,
        *,
        limit: int,
        reset_at: float,
        retry_after: int,
        detail: Optional[dict] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.limit = limit
        self.reset_at = reset_at
        self.retry_after = retry_after


class ConfigurationError(RuntimeError):
    """Required startup configuration is missing or unsafe."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        lines = "\n".join(f"  - {problem}" for problem in self.problems)
        super().__init__(f"Environment validation failed:\n{lines}")


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "ForbiddenError",
    "CsrfError",
    "NotFoundError",
    "RateLimitedError",
    "ConfigurationError",
]
