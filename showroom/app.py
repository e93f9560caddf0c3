from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from showroom.api.error_handling import register_exception_handlers
from showroom.api.routes import router
from showroom.config import get_settings
from showroom.logging import get_logger, set_correlation_id
from showroom.service.cookies import SESSION_COOKIE_NAME
from showroom.service.route_guard import guard_admin_navigation

logger = get_logger(__name__)

__version__ = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration, build the runtime and run the rate-limit sweeper."""
    from showroom.service.runtime import get_runtime

    # ConfigurationError propagates so a misconfigured production deploy never serves
    runtime = get_runtime()
    runtime.sweeper.start()
    logger.info("startup_complete", app_env=runtime.settings.app_env.value)

    yield

    try:
        await runtime.close()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title="Showroom", version=__version__, lifespan=lifespan)


def _allowed_origins() -> List[str]:
    settings = get_settings()
    if settings.cors_allow_origins:
        return settings.cors_allow_origins
    # Default to common local dev hosts; avoid wildcard when credentials are enabled.
    return [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-CSRF-Token",
        "X-Request-ID",
    ],
    expose_headers=[
        "X-Request-ID",
        "Retry-After",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
    ],
    max_age=3600,
)


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag each request with a correlation ID for log tracing.

    The client's X-Request-ID is reused when present, otherwise a new UUID is
    generated. The ID is bound into structured logs and echoed back in the
    X-Request-ID response header.
    """
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


@app.middleware("http")
async def guard_admin_pages(request: Request, call_next):
    redirect_to = guard_admin_navigation(
        request.url.path, request.cookies.get(SESSION_COOKIE_NAME)
    )
    if redirect_to:
        logger.info("admin_navigation_redirected", path=request.url.path)
        return RedirectResponse(redirect_to, status_code=307)
    return await call_next(request)


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if request.url.path.startswith("/api/") or request.url.path == "/healthz":
        response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, private")
    response.headers.setdefault(
        "Permissions-Policy", "camera=(), microphone=(), geolocation=(), payment=()"
    )
    if request.url.scheme == "https" and get_settings().is_production:
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=63072000; includeSubDomains"
        )
    return response


register_exception_handlers(app)
app.include_router(router)


@app.get("/healthz")
async def health() -> Dict[str, Any]:
    """Liveness plus the state of the rate-limit backend."""
    from showroom.service.runtime import get_runtime

    runtime = get_runtime()
    return {
        "status": "ok",
        "version": __version__,
        "app_env": runtime.settings.app_env.value,
        "rate_limit_backend": type(runtime.rate_limit_store).__name__,
        "sweeper_running": runtime.sweeper.running,
    }


def create_app() -> FastAPI:
    return app
