"""Account endpoints for the signed-in user.

Everything here is scoped to the user resolved from the Bearer token; no
endpoint accepts a user id from the client.
"""

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from winprod import config
from winprod.db.store import BillingStore, get_billing_store
from winprod.marketing import klaviyo
from winprod.security.auth import AuthenticatedUser, get_current_user
from winprod.security.middleware import limiter

router = APIRouter(prefix="/api/account")


class CustomerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str | None = Field(default=None, alias="fullName")


@router.post("/customer")
@limiter.limit(config.RATE_LIMIT_ACCOUNT)
def ensure_customer(
    request: Request,
    body: CustomerRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    store: BillingStore = Depends(get_billing_store),
):
    """Create or refresh the customer record after sign-in."""
    if not user.email:
        return JSONResponse({"error": "Account has no email address"}, status_code=400)
    is_new = store.get_customer(user.id) is None
    row = store.ensure_customer(user.id, user.email, body.full_name)
    if is_new:
        klaviyo.subscribe_customer(
            klaviyo.KlaviyoProfile(email=user.email, first_name=row.get("full_name"), external_id=user.id)
        )
    return row


@router.get("/subscription")
@limiter.limit(config.RATE_LIMIT_ACCOUNT)
def get_subscription(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    store: BillingStore = Depends(get_billing_store),
):
    return store.get_latest_subscription(user.id)


@router.get("/payments")
@limiter.limit(config.RATE_LIMIT_ACCOUNT)
def get_payments(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    store: BillingStore = Depends(get_billing_store),
):
    return store.list_payments(user.id)


@router.get("/admin")
@limiter.limit(config.RATE_LIMIT_ACCOUNT)
def get_admin_status(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    store: BillingStore = Depends(get_billing_store),
):
    return {"isAdmin": store.is_admin(user.id)}


def register_account_routes(app: FastAPI) -> None:
    app.include_router(router)
