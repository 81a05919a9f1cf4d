"""Stripe Checkout sessions and customer lookups.

A WinProd user maps to exactly one Stripe customer. The Stripe customer id
is stored on the `customers` row the first time the user opens checkout,
and the WinProd user id travels in Stripe metadata under `userId` so
webhooks can map events back to the user.
"""

from __future__ import annotations

import logging

import stripe

from winprod import config
from winprod.db.store import BillingStore
from winprod.errors import ConfigurationError, PaymentProviderError

logger = logging.getLogger(__name__)

CHECKOUT_MODES = ("subscription", "payment")


def get_stripe_client() -> stripe.StripeClient:
    """Build a Stripe client from STRIPE_SECRET_KEY."""
    if not config.STRIPE_SECRET_KEY:
        raise ConfigurationError("STRIPE_SECRET_KEY is not set")
    return stripe.StripeClient(api_key=config.STRIPE_SECRET_KEY)


def _get_or_create_customer(
    client: stripe.StripeClient, store: BillingStore, user_id: str, email: str | None
) -> str:
    customer = store.get_customer(user_id)
    existing = (customer or {}).get("stripe_customer_id")
    if existing:
        return existing

    params: dict = {"metadata": {"userId": user_id}}
    if email:
        params["email"] = email
    created = client.customers.create(params=params)
    logger.info("Created Stripe customer %s for user %s", created.id, user_id)
    store.set_stripe_customer_id(user_id, created.id)
    return created.id


def create_checkout_session(
    price_id: str,
    user_id: str,
    email: str | None,
    mode: str = "subscription",
    *,
    store: BillingStore,
    client: stripe.StripeClient | None = None,
) -> str:
    """Open a Stripe Checkout session for one unit of `price_id`.

    Args:
        price_id: Stripe price to sell.
        user_id: WinProd (Supabase auth) user id.
        email: Email used when a new Stripe customer is created.
        mode: "subscription" for recurring prices, "payment" for one-off.
        store: Billing store holding the customer row.
        client: Stripe client (built from config when omitted).

    Returns:
        The Checkout session id the browser redirects with.

    Raises:
        ValueError: Unsupported mode.
        PaymentProviderError: Stripe rejected a request.
    """
    if mode not in CHECKOUT_MODES:
        raise ValueError(f"Unsupported checkout mode: {mode}")

    client = client or get_stripe_client()
    try:
        customer_id = _get_or_create_customer(client, store, user_id, email)
        session = client.checkout.sessions.create(
            params={
                "customer": customer_id,
                "payment_method_types": ["card"],
                "line_items": [{"price": price_id, "quantity": 1}],
                "mode": mode,
                "success_url": f"{config.SITE_URL}/account?session_id={{CHECKOUT_SESSION_ID}}",
                "cancel_url": f"{config.SITE_URL}/pricing",
                "metadata": {"userId": user_id},
            }
        )
    except stripe.StripeError as e:
        raise PaymentProviderError(f"Stripe checkout failed: {e.user_message or e}") from e

    logger.info("Checkout session %s opened for user %s (%s, %s)", session.id, user_id, price_id, mode)
    return session.id


def retrieve_customer_user_id(customer_id: str, client: stripe.StripeClient | None = None) -> str | None:
    """WinProd user id stored in a Stripe customer's metadata, if any."""
    client = client or get_stripe_client()
    try:
        customer = client.customers.retrieve(customer_id)
    except stripe.StripeError as e:
        raise PaymentProviderError(f"Stripe customer lookup failed: {e}") from e
    try:
        return customer.metadata["userId"]
    except (AttributeError, KeyError, TypeError):
        return None
