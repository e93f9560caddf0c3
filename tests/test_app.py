"""Tests for app wiring: lifespan, middleware and health check."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from showroom import app as app_module
from showroom.config import AppEnv, RateLimitBackend, get_settings, reset_settings_cache
from showroom.logging import _redact_secrets
from showroom.service.runtime import Runtime, _mask_url_password, get_runtime
from showroom.storage.memory import MemoryRateLimitStore


class TestLifespan:
    def test_sweeper_runs_while_app_is_up(self):
        with TestClient(app_module.app) as client:
            assert get_runtime().sweeper.running
            assert client.get("/healthz").json()["sweeper_running"] is True
        assert not get_runtime().sweeper.running

    def test_create_app_returns_app(self):
        assert app_module.create_app() is app_module.app


class TestMiddleware:
    @pytest.fixture
    def client(self):
        return TestClient(app_module.app)

    def test_correlation_id_echoed(self, client):
        response = client.get("/healthz", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_correlation_id_generated(self, client):
        assert client.get("/healthz").headers["X-Request-ID"]

    def test_security_headers(self, client):
        response = client.get("/api/products")
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "no-store" in response.headers["Cache-Control"]

    def test_cors_preflight_allows_csrf_header(self, client):
        response = client.options(
            "/api/products",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "X-CSRF-Token",
            },
        )
        assert response.status_code == 200
        assert "x-csrf-token" in response.headers["access-control-allow-headers"].lower()
        assert response.headers["access-control-allow-credentials"] == "true"

    def test_health(self, client):
        body = client.get("/healthz").json()
        assert body["status"] == "ok"
        assert body["app_env"] == "test"
        assert body["rate_limit_backend"] == "MemoryRateLimitStore"

    def test_hsts_follows_cached_settings(self, monkeypatch):
        client = TestClient(app_module.app, base_url="https://testserver")
        assert "Strict-Transport-Security" not in client.get("/healthz").headers

        monkeypatch.setattr(get_settings(), "app_env", AppEnv.PRODUCTION)
        assert "Strict-Transport-Security" in client.get("/healthz").headers

        reset_settings_cache()
        assert "Strict-Transport-Security" not in client.get("/healthz").headers

    def test_uncaught_error_is_server_error_envelope(self):
        client = TestClient(app_module.app, raise_server_exceptions=False)
        with patch.object(
            get_runtime().catalog, "list_products", side_effect=RuntimeError("boom")
        ):
            response = client.get("/api/products")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "server_error"
        assert "boom" not in response.text


class TestRuntime:
    def test_redis_backend_falls_back_outside_production(self):
        runtime = get_runtime()
        runtime.settings.rate_limit_backend = RateLimitBackend.REDIS
        with patch(
            "showroom.service.runtime.RedisRateLimitStore.verify_connection",
            side_effect=ConnectionError("refused"),
        ):
            store = runtime._build_rate_limit_store()
        assert isinstance(store, MemoryRateLimitStore)

    def test_mask_url_password(self):
        assert _mask_url_password("redis://:hunter2@cache:6379/0") == "redis://:***@cache:6379/0"
        assert _mask_url_password("redis://cache:6379/0") == "redis://cache:6379/0"
        assert _mask_url_password(None) is None

    def test_runtime_type(self):
        assert isinstance(get_runtime(), Runtime)


class TestLogRedaction:
    def test_secrets_masked(self):
        event = _redact_secrets(
            None,
            "info",
            {"event": "x", "password": "hunter22", "csrf_token": "abcdef123456", "user": "admin"},
        )
        assert event["password"] == "***"
        assert event["csrf_token"] != "abcdef123456"
        assert event["user"] == "admin"
