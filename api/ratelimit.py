from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from core.config import get_settings


def client_address(request: Request) -> str:
    """Rate-limit key: first X-Forwarded-For hop when behind a proxy, else the peer address."""
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return forwarded or get_remote_address(request)


def sign_in_limit() -> str:
    return get_settings().sign_in_rate_limit


def _build_limiter() -> Limiter:
    settings = get_settings()
    return Limiter(
        key_func=client_address,
        storage_uri=settings.rate_limit_storage_uri,
        enabled=settings.rate_limit_enabled and settings.app_env != "test",
        headers_enabled=True,
    )


limiter = _build_limiter()


def rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimitExceeded):
        limit = getattr(exc, "limit", None)
        if limit is not None:
            headers["Retry-After"] = str(limit.limit.get_expiry())
    return JSONResponse(
        status_code=429,
        content={"detail": {"code": "RATE_LIMITED", "message": "Too many attempts, please try again later"}},
        headers=headers,
    )
