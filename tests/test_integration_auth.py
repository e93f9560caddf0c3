"""Integration tests for the admin authentication perimeter.

Covers the full request path through the app:
- CSRF token issuance and the double-submit check
- Login, including the per-address login rate limit
- Protected endpoints via cookie or bearer token
- Expired sessions
- Password change and logout
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from showroom import app as app_module
from showroom.service.runtime import reset_runtime_for_tests
from showroom.service.tokens import Identity

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "Sup3r-Secret!"

PRODUCT = {
    "category": "tea",
    "name": "Roasted barley",
    "description": "Nutty, caffeine free.",
}


@pytest.fixture
def runtime(clock):
    return reset_runtime_for_tests(clock=clock)


@pytest.fixture
def client(runtime):
    """Create a test client for the API."""
    return TestClient(app_module.app)


def _csrf(client) -> str:
    return client.get("/api/auth/csrf").json()["csrfToken"]


def _login(client, username=ADMIN_USERNAME, password=ADMIN_PASSWORD, **extra):
    token = _csrf(client)
    response = client.post(
        "/api/auth/login",
        json={"username": username, "password": password, **extra},
        headers={"X-CSRF-Token": token},
    )
    return token, response


class TestCsrfIssuance:
    def test_returns_token_and_sets_cookie(self, client):
        response = client.get("/api/auth/csrf")

        assert response.status_code == 200
        token = response.json()["csrfToken"]
        assert len(token) == 64
        assert client.cookies.get("csrf_token") == token
        assert response.headers["Cache-Control"] == "no-store"

    def test_repeat_calls_return_same_token(self, client):
        assert _csrf(client) == _csrf(client)


class TestLogin:
    def test_csrf_then_login_sets_session(self, client):
        csrf_token = _csrf(client)
        response = client.post(
            "/api/auth/login",
            json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
            headers={"X-CSRF-Token": csrf_token},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Login successful"
        assert body["user"]["username"] == ADMIN_USERNAME
        assert body["user"]["role"] == "admin"
        assert "password" not in str(body["user"]).lower()
        assert response.cookies.get("auth_token")
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_session_cookie_attributes(self, client, runtime):
        _, response = _login(client)
        cookie = next(
            value for value in response.headers.get_list("set-cookie") if value.startswith("auth_token=")
        )
        assert "HttpOnly" in cookie
        assert "SameSite=lax" in cookie
        assert "Max-Age=604800" in cookie

    def test_remember_me_extends_session(self, client, runtime):
        _, response = _login(client, rememberMe=True)
        cookie = next(
            value for value in response.headers.get_list("set-cookie") if value.startswith("auth_token=")
        )
        assert f"Max-Age={runtime.codec.ttl_seconds(extended=True)}" in cookie

    def test_login_succeeds_when_admin_appears_mid_bootstrap(self, client, runtime):
        runtime.accounts.initialize_default_admin()
        with patch.object(runtime.store, "count_admin_users", return_value=0):
            _, response = _login(client)

        assert response.status_code == 200
        assert runtime.store.count_admin_users() == 1

    def test_login_without_csrf_header_rejected(self, client):
        _csrf(client)
        response = client.post(
            "/api/auth/login",
            json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "csrf_invalid"
        assert "auth_token" not in response.cookies

    def test_bad_credentials_are_generic(self, client):
        _, wrong_password = _login(client, password="not-the-password")
        _, unknown_user = _login(client, username="nobody")

        assert wrong_password.status_code == 401
        assert unknown_user.status_code == 401
        assert wrong_password.json()["error"] == unknown_user.json()["error"]
        assert wrong_password.json()["error"]["message"] == "Invalid credentials"

    def test_invalid_body_is_validation_error(self, client):
        token = _csrf(client)
        response = client.post(
            "/api/auth/login",
            json={"username": "ab", "password": "x"},
            headers={"X-CSRF-Token": token},
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "validation_error"
        fields = {item["field"] for item in error["details"]}
        assert fields == {"username", "password"}


class TestLoginRateLimit:
    def test_sixth_attempt_is_rejected_with_reset_time(self, client, clock):
        first_attempt_at = clock.now
        statuses = []
        for _ in range(5):
            _, response = _login(client, password="not-the-password")
            statuses.append(response.status_code)
            clock.advance(10)

        _, sixth = _login(client)

        assert statuses == [401] * 5
        assert sixth.status_code == 429
        error = sixth.json()["error"]
        assert error["code"] == "rate_limited"
        assert error["details"]["reset_time"] == first_attempt_at + 900
        assert sixth.headers["Retry-After"] == str(900 - 50)
        assert sixth.headers["X-RateLimit-Remaining"] == "0"
        assert sixth.headers["X-RateLimit-Limit"] == "5"

    def test_window_reset_allows_login_again(self, client, clock):
        for _ in range(6):
            _login(client, password="not-the-password")

        clock.advance(900)
        _, response = _login(client)

        assert response.status_code == 200

    def test_limit_is_per_client_address(self, client):
        for _ in range(6):
            token = _csrf(client)
            client.post(
                "/api/auth/login",
                json={"username": ADMIN_USERNAME, "password": "not-the-password"},
                headers={"X-CSRF-Token": token, "X-Forwarded-For": "203.0.113.1"},
            )

        token = _csrf(client)
        response = client.post(
            "/api/auth/login",
            json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
            headers={"X-CSRF-Token": token, "X-Forwarded-For": "203.0.113.2"},
        )
        assert response.status_code == 200


class TestProtectedEndpoints:
    def test_missing_csrf_header_never_reaches_handler(self, client, runtime):
        _login(client)
        runtime.catalog.create_product = MagicMock()

        response = client.post("/api/products", json=PRODUCT)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "csrf_invalid"
        assert runtime.catalog.create_product.call_count == 0

    def test_mismatched_csrf_header_rejected(self, client, runtime):
        _login(client)
        runtime.catalog.create_product = MagicMock()

        response = client.post("/api/products", json=PRODUCT, headers={"X-CSRF-Token": "0" * 64})

        assert response.status_code == 403
        assert runtime.catalog.create_product.call_count == 0

    def test_csrf_checked_before_session(self, client):
        # No session at all: CSRF failure still wins
        response = client.post("/api/products", json=PRODUCT)
        assert response.status_code == 403

    def test_missing_session_is_unauthorized(self, client):
        token = _csrf(client)
        response = client.post("/api/products", json=PRODUCT, headers={"X-CSRF-Token": token})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"

    def test_garbage_session_is_unauthorized(self, client):
        token = _csrf(client)
        client.cookies.set("auth_token", "not.a.token")
        response = client.post("/api/products", json=PRODUCT, headers={"X-CSRF-Token": token})
        assert response.status_code == 401

    def test_cookie_session_accepted(self, client):
        csrf_token, _ = _login(client)
        response = client.post("/api/products", json=PRODUCT, headers={"X-CSRF-Token": csrf_token})

        assert response.status_code == 201
        assert response.json()["data"]["name"] == PRODUCT["name"]

    def test_bearer_token_fallback(self, client, runtime):
        session = runtime.codec.issue(Identity(user_id="u-1", username="api", role="admin"))
        csrf_token = _csrf(client)

        response = client.post(
            "/api/products",
            json=PRODUCT,
            headers={"X-CSRF-Token": csrf_token, "Authorization": f"Bearer {session}"},
        )

        assert response.status_code == 201

    def test_expired_token_rejected(self, client, runtime, clock):
        csrf_token, _ = _login(client)
        clock.advance(runtime.codec.ttl_seconds() + 1)

        response = client.post("/api/products", json=PRODUCT, headers={"X-CSRF-Token": csrf_token})

        assert response.status_code == 401

    def test_token_valid_one_second_before_expiry(self, client, runtime, clock):
        csrf_token, _ = _login(client)
        clock.advance(runtime.codec.ttl_seconds() - 1)

        response = client.post("/api/products", json=PRODUCT, headers={"X-CSRF-Token": csrf_token})

        assert response.status_code == 201


class TestChangePassword:
    def test_change_password_then_login(self, client):
        csrf_token, _ = _login(client)
        response = client.post(
            "/api/auth/change-password",
            json={
                "currentPassword": ADMIN_PASSWORD,
                "newPassword": "N3w-Passw0rd!",
                "confirmPassword": "N3w-Passw0rd!",
            },
            headers={"X-CSRF-Token": csrf_token},
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Password changed successfully"
        _, old = _login(client)
        _, new = _login(client, password="N3w-Passw0rd!")
        assert old.status_code == 401
        assert new.status_code == 200

    def test_wrong_current_password(self, client):
        csrf_token, _ = _login(client)
        response = client.post(
            "/api/auth/change-password",
            json={
                "currentPassword": "wrong-one",
                "newPassword": "N3w-Passw0rd!",
                "confirmPassword": "N3w-Passw0rd!",
            },
            headers={"X-CSRF-Token": csrf_token},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    @pytest.mark.parametrize(
        "new_password, confirm",
        [
            ("short1!", "short1!"),
            ("alllowercase1!", "alllowercase1!"),
            ("NoDigits!!", "NoDigits!!"),
            ("NoSymbols123", "NoSymbols123"),
            ("N3w-Passw0rd!", "Different-1!"),
        ],
    )
    def test_weak_or_mismatched_password_rejected(self, client, new_password, confirm):
        csrf_token, _ = _login(client)
        response = client.post(
            "/api/auth/change-password",
            json={
                "currentPassword": ADMIN_PASSWORD,
                "newPassword": new_password,
                "confirmPassword": confirm,
            },
            headers={"X-CSRF-Token": csrf_token},
        )

        assert response.status_code == 400

    def test_requires_session(self, client):
        csrf_token = _csrf(client)
        response = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "x", "newPassword": "N3w-Passw0rd!", "confirmPassword": "N3w-Passw0rd!"},
            headers={"X-CSRF-Token": csrf_token},
        )
        assert response.status_code == 401


class TestLogout:
    def test_logout_clears_both_cookies_without_csrf(self, client):
        _login(client)

        response = client.post("/api/auth/logout")

        assert response.status_code == 200
        assert response.json()["message"] == "Logout successful"
        cleared = response.headers.get_list("set-cookie")
        assert any(c.startswith("auth_token=") and "Max-Age=0" in c for c in cleared)
        assert any(c.startswith("csrf_token=") and "Max-Age=0" in c for c in cleared)
