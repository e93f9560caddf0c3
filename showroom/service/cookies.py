from __future__ import annotations

from typing import Optional

from fastapi import Request, Response

SESSION_COOKIE_NAME = "auth_token"
CSRF_COOKIE_NAME = "csrf_token"
SESSION_COOKIE_MAX_AGE = 7 * 24 * 60 * 60
CSRF_COOKIE_MAX_AGE = 24 * 60 * 60


class CookieStore:
    """Reads and writes the session and CSRF cookies.

    Both cookies share SameSite=Lax, path ``/`` and the production-only Secure
    flag; only the session cookie is hidden from page script.
    """

    def __init__(self, *, secure: bool, session_max_age: int = SESSION_COOKIE_MAX_AGE) -> None:
        self.secure = secure
        self.session_max_age = session_max_age

    def set_session_cookie(
        self, response: Response, token: str, *, max_age: Optional[int] = None
    ) -> None:
        response.set_cookie(
            SESSION_COOKIE_NAME,
            token,
            max_age=self.session_max_age if max_age is None else max_age,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )

    def get_session_cookie(self, request: Request) -> Optional[str]:
        return request.cookies.get(SESSION_COOKIE_NAME) or None

    def clear_session_cookie(self, response: Response) -> None:
        response.set_cookie(
            SESSION_COOKIE_NAME,
            "",
            max_age=0,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )

    def set_csrf_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            CSRF_COOKIE_NAME,
            token,
            max_age=CSRF_COOKIE_MAX_AGE,
            path="/",
            secure=self.secure,
            httponly=False,
            samesite="lax",
        )

    def get_csrf_cookie(self, request: Request) -> Optional[str]:
        return request.cookies.get(CSRF_COOKIE_NAME) or None

    def clear_csrf_cookie(self, response: Response) -> None:
        response.set_cookie(
            CSRF_COOKIE_NAME,
            "",
            max_age=0,
            path="/",
            secure=self.secure,
            httponly=False,
            samesite="lax",
        )
