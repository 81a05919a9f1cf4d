"""Newsletter sign-up from the marketing pages (no account required)."""

import logging

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from winprod import config
from winprod.marketing import klaviyo
from winprod.security.middleware import limiter

logger = logging.getLogger(__name__)

router = APIRouter()


class NewsletterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(max_length=254)
    first_name: str | None = Field(default=None, alias="firstName", max_length=100)


@router.post("/api/newsletter")
@limiter.limit(config.RATE_LIMIT_NEWSLETTER)
def subscribe_newsletter(request: Request, body: NewsletterRequest):
    """Add an email address to the newsletter list."""
    email = body.email.strip()
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        return JSONResponse({"error": "A valid email address is required"}, status_code=400)

    if not klaviyo.subscribe_to_newsletter(klaviyo.KlaviyoProfile(email=email, first_name=body.first_name)):
        return JSONResponse({"error": "Newsletter sign-up is unavailable"}, status_code=503)
    return {"subscribed": True}


def register_newsletter_routes(app: FastAPI) -> None:
    app.include_router(router)
