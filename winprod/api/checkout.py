"""Stripe Checkout proxy endpoint.

The browser cannot hold the Stripe secret key, so it asks this endpoint
for a Checkout session id and then redirects with Stripe.js.
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from winprod import config
from winprod.db.store import BillingStore, get_billing_store
from winprod.errors import WinProdError
from winprod.marketing import klaviyo
from winprod.payments.stripe_checkout import create_checkout_session
from winprod.plans import is_known_price
from winprod.security.auth import AuthenticatedUser, get_current_user
from winprod.security.middleware import limiter

logger = logging.getLogger(__name__)


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_id: str = Field(alias="priceId", min_length=1)
    user_id: str | None = Field(default=None, alias="userId")
    email: str | None = None
    mode: Literal["subscription", "payment"] = "subscription"


def open_checkout(body: CheckoutRequest, user: AuthenticatedUser, store: BillingStore) -> JSONResponse:
    if body.user_id and body.user_id != user.id:
        logger.warning("Checkout for %s requested by %s, rejected", body.user_id, user.id)
        return JSONResponse({"error": "Cannot open checkout for another user"}, status_code=403)

    if not is_known_price(body.price_id):
        return JSONResponse({"error": "Unknown price"}, status_code=400)

    try:
        session_id = create_checkout_session(
            body.price_id,
            user.id,
            body.email or user.email,
            body.mode,
            store=store,
        )
    except WinProdError:
        logger.exception("Error creating checkout session for %s", user.id)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    klaviyo.notify_checkout_started(body.email or user.email, user.id, body.price_id)
    return JSONResponse({"sessionId": session_id})


router = APIRouter()


# The SPA's older payment service posts to the unprefixed path.
@router.post("/api/stripe/create-checkout-session")
@router.post("/api/create-checkout-session")
@limiter.limit(config.RATE_LIMIT_CHECKOUT)
def create_checkout(
    request: Request,
    body: CheckoutRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    store: BillingStore = Depends(get_billing_store),
):
    """Open a Stripe Checkout session for the signed-in user."""
    return open_checkout(body, user, store)


def register_checkout_routes(app: FastAPI) -> None:
    app.include_router(router)
