"""reCAPTCHA token verification proxy (keeps the secret key server-side)."""

import logging

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from winprod import config
from winprod.errors import ConfigurationError
from winprod.retry import with_backoff
from winprod.security.middleware import limiter

logger = logging.getLogger(__name__)


class RecaptchaRequest(BaseModel):
    token: str | None = None


@with_backoff(max_retries=1)
def _siteverify(token: str, remote_ip: str | None) -> dict:
    data = {"secret": config.RECAPTCHA_SECRET_KEY, "response": token}
    if remote_ip:
        data["remoteip"] = remote_ip
    response = httpx.post(config.RECAPTCHA_VERIFY_URL, data=data, timeout=10.0)
    response.raise_for_status()
    return response.json()


def verify_recaptcha_token(token: str, remote_ip: str | None = None) -> bool:
    """Ask Google whether a reCAPTCHA response token is valid.

    Raises:
        ConfigurationError: RECAPTCHA_SECRET_KEY is not set.
        httpx.HTTPError: Google could not be reached.
    """
    if not config.RECAPTCHA_SECRET_KEY:
        raise ConfigurationError("RECAPTCHA_SECRET_KEY is not set")
    result = _siteverify(token, remote_ip)
    if not result.get("success"):
        logger.info("reCAPTCHA rejected: %s", result.get("error-codes"))
        return False
    return True


router = APIRouter()


@router.post("/api/verify-recaptcha")
@limiter.limit(config.RATE_LIMIT_RECAPTCHA)
def verify_recaptcha(request: Request, body: RecaptchaRequest):
    """Verify a reCAPTCHA token posted by the sign-up form."""
    if not body.token:
        return JSONResponse({"error": "reCAPTCHA token is required"}, status_code=400)

    client_ip = request.client.host if request.client else None
    try:
        valid = verify_recaptcha_token(body.token, client_ip)
    except (ConfigurationError, httpx.HTTPError, ValueError):
        logger.exception("Error verifying reCAPTCHA")
        return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)

    if not valid:
        return JSONResponse(
            {"success": False, "error": "reCAPTCHA verification failed"}, status_code=400
        )
    return JSONResponse({"success": True})


def register_recaptcha_routes(app: FastAPI) -> None:
    app.include_router(router)
