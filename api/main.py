from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from api.observability import (
    configure_logging,
    monotonic_ms,
    new_request_id,
    request_log_fields,
    reset_request_id,
    set_request_id,
)
from api.ratelimit import limiter, rate_limit_exceeded_handler
from api.routes import router
from core.config import get_settings
from core.db import create_schema
from core.errors import CoachingError

logger = logging.getLogger(__name__)


def coaching_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, CoachingError):
        raise exc
    if exc.status_code >= 500:
        logger.error("request_failed", extra={"code": exc.code, "error": exc.message, "path": request.url.path})
    else:
        logger.info("request_rejected", extra={"code": exc.code, "error": exc.message, "path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content={"detail": {"code": exc.code, "message": exc.message}})


def _log_request(request: Request, status_code: int, started_ms: float) -> dict:
    return request_log_fields(
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        duration_ms=monotonic_ms() - started_ms,
        client_ip=getattr(request.client, "host", None),
    )


def request_id_middleware(header_name: str):
    """Tag every log line of a request with its id and echo the id back."""

    async def middleware(request: Request, call_next: Callable) -> Response:
        request_id = (request.headers.get(header_name) or "").strip() or new_request_id()
        token = set_request_id(request_id)
        started_ms = monotonic_ms()
        try:
            response = await call_next(request)
            response.headers[header_name] = request_id
            logger.info("http_request", extra=_log_request(request, response.status_code, started_ms))
            return response
        except Exception:
            logger.exception("http_request_error", extra=_log_request(request, 500, started_ms))
            raise
        finally:
            reset_request_id(token)

    return middleware


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        create_schema()
        logger.info("schema_ready", extra={"app_env": settings.app_env})
        yield

    app = FastAPI(title="Moai Coaching API", version="1.0.0", lifespan=lifespan)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(CoachingError, coaching_error_handler)
    app.include_router(router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_id_middleware(settings.request_id_header_name or "X-Request-ID"))
    return app


app = create_app()
