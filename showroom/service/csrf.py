"""Double-submit cookie CSRF protection.

The token lives in a script-readable cookie and must be echoed back in the
``x-csrf-token`` header on every state-changing request. A cross-site page can
make the browser send the cookie but cannot read it, so it cannot produce the
matching header. No server-side registry is kept: equality of the two copies
is the whole check.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Request, Response

from showroom.service.cookies import CookieStore

CSRF_HEADER_NAME = "x-csrf-token"
CSRF_TOKEN_BYTES = 32
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

_TOKEN_PATTERN = re.compile(r"^[0-9a-f]{%d}$" % (CSRF_TOKEN_BYTES * 2))


class CsrfFailure(str, Enum):
    MISSING_COOKIE = "missing_cookie"
    MISSING_HEADER = "missing_header"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class CsrfCheck:
    passed: bool
    reason: Optional[CsrfFailure] = None


def generate_csrf_token() -> str:
    """Return 256 random bits, hex encoded."""
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def timing_safe_equal(a: str, b: str) -> bool:
    """Compare two tokens without short-circuiting on the first differing byte."""
    left = a.encode("utf-8")
    right = b.encode("utf-8")
    if len(left) != len(right):
        return False
    result = 0
    for x, y in zip(left, right):
        result |= x ^ y
    return result == 0


class CsrfGuard:
    """Validates and issues double-submit CSRF tokens."""

    def __init__(self, cookies: CookieStore) -> None:
        self.cookies = cookies

    def check(
        self, method: str, cookie_token: Optional[str], header_token: Optional[str]
    ) -> CsrfCheck:
        if method.upper() in SAFE_METHODS:
            return CsrfCheck(passed=True)
        if not cookie_token:
            return CsrfCheck(passed=False, reason=CsrfFailure.MISSING_COOKIE)
        if not header_token:
            return CsrfCheck(passed=False, reason=CsrfFailure.MISSING_HEADER)
        if not timing_safe_equal(cookie_token, header_token):
            return CsrfCheck(passed=False, reason=CsrfFailure.MISMATCH)
        return CsrfCheck(passed=True)

    def check_request(self, request: Request) -> CsrfCheck:
        return self.check(
            request.method,
            self.cookies.get_csrf_cookie(request),
            request.headers.get(CSRF_HEADER_NAME),
        )

    def issue(self, request: Request, response: Response) -> str:
        """Return the caller's current token, minting one if it has none.

        The cookie is always re-set so its max-age restarts.
        """
        token = self.cookies.get_csrf_cookie(request)
        if not token or not _TOKEN_PATTERN.match(token):
            token = generate_csrf_token()
        self.cookies.set_csrf_cookie(response, token)
        return token
