from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from showroom.api.schemas import (
    BannerCreateRequest,
    BannerResponse,
    BannerUpdateRequest,
    ChangePasswordRequest,
    CsrfTokenResponse,
    Envelope,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProductCreateRequest,
    ProductResponse,
    ProductUpdateRequest,
    UserResponse,
)
from showroom.logging import get_logger
from showroom.service.auth import AuthFailure
from showroom.service.errors import AuthenticationError, CsrfError, RateLimitedError
from showroom.service.rate_limit import RateLimitResult, client_ip
from showroom.service.runtime import check_rate_limit, get_runtime
from showroom.service.tokens import Identity

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


def _http_error(
    code: str, message: str, status_code: int, details: Optional[dict | str] = None
) -> HTTPException:
    payload: dict[str, object] = {
        "status": "error",
        "error": {"code": code, "message": message},
    }
    if details is not None:
        payload["error"]["details"] = details  # type: ignore[index]
    return HTTPException(status_code=status_code, detail=payload)


def _apply_rate_limit_headers(response: Response, result: RateLimitResult) -> None:
    for name, value in result.headers().items():
        response.headers[name] = value


async def require_identity(request: Request) -> Identity:
    """Single enforcement point for protected endpoints.

    CSRF is checked before the session token so a forged request is rejected
    without ever touching credentials.
    """
    runtime = get_runtime()
    outcome = runtime.auth.authenticate(request)
    if outcome.failure == AuthFailure.CSRF:
        reason = outcome.csrf.reason.value if outcome.csrf and outcome.csrf.reason else None
        raise CsrfError("missing or invalid CSRF token", detail={"reason": reason})
    if outcome.failure == AuthFailure.MISSING_TOKEN:
        raise AuthenticationError("authentication required")
    if not outcome.ok:
        raise AuthenticationError("invalid or expired session")
    return outcome.identity


async def require_csrf(request: Request) -> None:
    runtime = get_runtime()
    check = runtime.csrf.check_request(request)
    if not check.passed:
        logger.warning(
            "csrf_validation_failed",
            method=request.method,
            path=request.url.path,
            client_ip=client_ip(request.headers),
            reason=check.reason.value,
        )
        raise CsrfError("missing or invalid CSRF token", detail={"reason": check.reason.value})


async def enforce_login_rate_limit(request: Request, response: Response) -> RateLimitResult:
    """Count a login attempt against the caller's address.

    Runs before the body is parsed so malformed attempts are counted too.
    """
    runtime = get_runtime()
    ip = client_ip(request.headers)
    result = await check_rate_limit(
        runtime,
        f"login:{ip}",
        runtime.settings.login_rate_limit,
        runtime.settings.login_rate_limit_window_seconds,
    )
    if not result.allowed:
        logger.warning("login_rate_limited", client_ip=ip, reset_at=result.reset_at)
        raise RateLimitedError(
            "Too many login attempts. Please try again later.",
            limit=result.limit,
            reset_at=result.reset_at,
            retry_after=result.retry_after(runtime.limiter.now()),
            detail={"reset_time": result.reset_at},
        )
    _apply_rate_limit_headers(response, result)
    return result


# -- auth ------------------------------------------------------------------


@router.get("/auth/csrf", response_model=CsrfTokenResponse)
async def issue_csrf_token(request: Request, response: Response):
    runtime = get_runtime()
    token = runtime.csrf.issue(request, response)
    response.headers["Cache-Control"] = "no-store"
    return CsrfTokenResponse(csrf_token=token)


@router.post(
    "/auth/login",
    response_model=LoginResponse,
    dependencies=[Depends(require_csrf)],
)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    _rate_limit: RateLimitResult = Depends(enforce_login_rate_limit),
):
    runtime = get_runtime()
    ip = client_ip(request.headers)
    await asyncio.to_thread(runtime.accounts.initialize_default_admin)
    user = await asyncio.to_thread(runtime.accounts.authenticate, body.username, body.password)
    if not user:
        logger.warning("login_failed", username=body.username, client_ip=ip)
        raise _http_error("unauthorized", "Invalid credentials", status_code=401)

    identity = Identity(user_id=user.id, username=user.username, role=user.role)
    token = runtime.codec.issue(identity, extended=body.remember_me)
    # rememberMe cookies live as long as the extended token
    max_age = runtime.codec.ttl_seconds(extended=True) if body.remember_me else None
    runtime.cookies.set_session_cookie(response, token, max_age=max_age)
    logger.info(
        "login_succeeded",
        user_id=user.id,
        username=user.username,
        client_ip=ip,
        remember_me=body.remember_me,
    )
    return LoginResponse(
        user=UserResponse(
            id=user.id, username=user.username, role=user.role, created_at=user.created_at
        ),
        message="Login successful",
    )


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response):
    # No CSRF check: clients fire this with navigator.sendBeacon, which cannot set headers
    runtime = get_runtime()
    runtime.cookies.clear_session_cookie(response)
    runtime.cookies.clear_csrf_cookie(response)
    logger.info("logout", client_ip=client_ip(request.headers))
    return MessageResponse(message="Logout successful")


@router.post("/auth/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest, identity: Identity = Depends(require_identity)
):
    runtime = get_runtime()
    await asyncio.to_thread(
        runtime.accounts.change_password,
        identity.user_id,
        body.current_password,
        body.new_password,
    )
    logger.info("password_changed", user_id=identity.user_id, username=identity.username)
    return MessageResponse(message="Password changed successfully")


# -- products --------------------------------------------------------------


@router.get("/products", response_model=Envelope)
async def list_products(active_only: bool = False):
    runtime = get_runtime()
    products = runtime.catalog.list_products(active_only=active_only)
    return Envelope(status="ok", data=[ProductResponse.model_validate(p) for p in products])


@router.get("/products/{product_id}", response_model=Envelope)
async def get_product(product_id: str):
    runtime = get_runtime()
    product = runtime.catalog.get_product(product_id)
    return Envelope(status="ok", data=ProductResponse.model_validate(product))


@router.post("/products", response_model=Envelope, status_code=201)
async def create_product(
    body: ProductCreateRequest, identity: Identity = Depends(require_identity)
):
    runtime = get_runtime()
    product = runtime.catalog.create_product(
        body.model_dump(exclude_none=True), actor=identity.username
    )
    return Envelope(status="ok", data=ProductResponse.model_validate(product))


@router.put("/products/{product_id}", response_model=Envelope)
async def update_product(
    product_id: str,
    body: ProductUpdateRequest,
    identity: Identity = Depends(require_identity),
):
    runtime = get_runtime()
    product = runtime.catalog.update_product(
        product_id, body.model_dump(exclude_unset=True), actor=identity.username
    )
    return Envelope(status="ok", data=ProductResponse.model_validate(product))


@router.delete("/products/{product_id}", response_model=Envelope)
async def delete_product(product_id: str, identity: Identity = Depends(require_identity)):
    runtime = get_runtime()
    runtime.catalog.delete_product(product_id, actor=identity.username)
    return Envelope(status="ok", data={"id": product_id})


# -- banners ---------------------------------------------------------------


@router.get("/banners", response_model=Envelope)
async def list_banners(active_only: bool = False):
    runtime = get_runtime()
    banners = runtime.catalog.list_banners(active_only=active_only)
    return Envelope(status="ok", data=[BannerResponse.model_validate(b) for b in banners])


@router.get("/banners/{banner_id}", response_model=Envelope)
async def get_banner(banner_id: str):
    runtime = get_runtime()
    banner = runtime.catalog.get_banner(banner_id)
    return Envelope(status="ok", data=BannerResponse.model_validate(banner))


@router.post("/banners", response_model=Envelope, status_code=201)
async def create_banner(
    body: BannerCreateRequest, identity: Identity = Depends(require_identity)
):
    runtime = get_runtime()
    banner = runtime.catalog.create_banner(
        body.model_dump(exclude_none=True), actor=identity.username
    )
    return Envelope(status="ok", data=BannerResponse.model_validate(banner))


@router.put("/banners/{banner_id}", response_model=Envelope)
async def update_banner(
    banner_id: str,
    body: BannerUpdateRequest,
    identity: Identity = Depends(require_identity),
):
    runtime = get_runtime()
    banner = runtime.catalog.update_banner(
        banner_id, body.model_dump(exclude_unset=True), actor=identity.username
    )
    return Envelope(status="ok", data=BannerResponse.model_validate(banner))


@router.delete("/banners/{banner_id}", response_model=Envelope)
async def delete_banner(banner_id: str, identity: Identity = Depends(require_identity)):
    runtime = get_runtime()
    runtime.catalog.delete_banner(banner_id, actor=identity.username)
    return Envelope(status="ok", data={"id": banner_id})
