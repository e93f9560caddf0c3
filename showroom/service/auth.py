from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from fastapi import Request

from showroom.logging import get_logger
from showroom.service.cookies import CookieStore
from showroom.service.csrf import CsrfCheck, CsrfGuard
from showroom.service.rate_limit import client_ip
from showroom.service.tokens import Identity, TokenCodec

logger = get_logger(__name__)

TokenSource = Callable[[Request], Optional[str]]


def bearer_token(request: Request) -> Optional[str]:
    """Token from an ``Authorization: Bearer`` header, if present."""
    authorization = request.headers.get("authorization")
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


class AuthFailure(str, Enum):
    CSRF = "csrf"
    MISSING_TOKEN = "missing_token"
    INVALID_TOKEN = "invalid_token"


@dataclass(frozen=True)
class AuthOutcome:
    identity: Optional[Identity] = None
    failure: Optional[AuthFailure] = None
    csrf: Optional[CsrfCheck] = None

    @property
    def ok(self) -> bool:
        return self.identity is not None


class RequestAuthenticator:
    """Runs the CSRF check, then resolves and verifies the session token.

    Token sources are tried in order and the first non-empty value wins; by
    default the session cookie comes before the bearer header so browsers and
    non-browser clients share one code path.
    """

    def __init__(
        self,
        csrf: CsrfGuard,
        cookies: CookieStore,
        codec: TokenCodec,
        *,
        token_sources: Optional[Sequence[TokenSource]] = None,
    ) -> None:
        self.csrf = csrf
        self.cookies = cookies
        self.codec = codec
        if token_sources is None:
            token_sources = (cookies.get_session_cookie, bearer_token)
        self.token_sources = tuple(token_sources)

    def extract_token(self, request: Request) -> Optional[str]:
        for source in self.token_sources:
            token = source(request)
            if token:
                return token
        return None

    def authenticate(self, request: Request) -> AuthOutcome:
        log = logger.bind(
            method=request.method,
            path=request.url.path,
            client_ip=client_ip(request.headers),
        )
        check = self.csrf.check_request(request)
        if not check.passed:
            log.warning("csrf_validation_failed", reason=check.reason.value)
            return AuthOutcome(failure=AuthFailure.CSRF, csrf=check)

        token = self.extract_token(request)
        if not token:
            log.info("auth_token_missing")
            return AuthOutcome(failure=AuthFailure.MISSING_TOKEN, csrf=check)

        claims = self.codec.verify(token)
        if claims is None:
            log.warning("auth_token_invalid")
            return AuthOutcome(failure=AuthFailure.INVALID_TOKEN, csrf=check)
        return AuthOutcome(identity=claims.identity, csrf=check)
