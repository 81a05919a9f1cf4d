"""Security middleware for FastAPI: CORS, rate limiting, error bodies.

Middleware ordering (outermost first):
1. CORS -- handles OPTIONS preflight before anything else
2. Rate limiting -- per-route slowapi limits, keyed by client IP

Webhook routes carry no rate limit: providers burst on retries and every
delivery is signature-checked anyway.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException

from winprod import config
from winprod.errors import WinProdError

logger = logging.getLogger(__name__)


def _get_client_ip(request: Request) -> str:
    """Client IP, trusting X-Forwarded-For only behind configured proxies."""
    if config.TRUSTED_PROXIES:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(key_func=_get_client_ip)


def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = getattr(exc, "retry_after", 60)
    logger.warning("Rate limit exceeded on %s from %s", request.url.path, _get_client_ip(request))
    return JSONResponse(
        {"error": "Rate limit exceeded", "retry_after": retry_after},
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )


def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse({"error": message}, status_code=422)


def _app_error_handler(request: Request, exc: WinProdError) -> JSONResponse:
    logger.error("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def install_security_middleware(app: FastAPI) -> None:
    """Install error handlers, rate limiting and CORS on the app.

    Call this AFTER all routes are registered. Middleware is added in
    reverse order (last added = outermost = runs first).
    """
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(WinProdError, _app_error_handler)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
