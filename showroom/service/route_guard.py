from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

ADMIN_PREFIX = "/admin"
ADMIN_LOGIN_PATH = "/admin/login"


def is_guarded_path(path: str) -> bool:
    """True for admin page navigations other than the login page."""
    if not path.startswith(ADMIN_PREFIX):
        return False
    return not path.startswith(ADMIN_LOGIN_PATH)


def login_redirect_url(path: str) -> str:
    return f"{ADMIN_LOGIN_PATH}?{urlencode({'redirect': path})}"


def guard_admin_navigation(path: str, session_token: Optional[str]) -> Optional[str]:
    """Return the login URL to redirect to, or None to let the request through.

    Only the presence of the session cookie is checked here. The token itself
    is verified when the page's API calls reach a protected endpoint.
    """
    if not is_guarded_path(path):
        return None
    if session_token:
        return None
    return login_redirect_url(path)
