"""Stripe event handlers: subscription lifecycle and successful charges.

Each handler receives the event's `data.object` as a plain dict (the
verified JSON body, not a Stripe SDK object) and the billing store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from winprod.db.store import BillingStore, utc_now
from winprod.errors import EventDataError
from winprod.marketing import klaviyo
from winprod.payments.stripe_checkout import retrieve_customer_user_id
from winprod.plans import tier_for_plan

logger = logging.getLogger(__name__)


def epoch_to_iso(value: int | None) -> str | None:
    """Stripe epoch seconds -> ISO-8601 UTC timestamp (None stays None)."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


def _first_item(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period_end(subscription: dict[str, Any]) -> str | None:
    # Newer API versions moved the billing period onto the subscription items.
    value = subscription.get("current_period_end") or _first_item(subscription).get("current_period_end")
    return epoch_to_iso(value)


def _resolve_user_id(store: BillingStore, customer_id: str) -> str | None:
    customer = store.get_customer_by_stripe_id(customer_id)
    if customer and customer.get("user_id"):
        return customer["user_id"]
    return retrieve_customer_user_id(customer_id)


def handle_subscription_created(subscription: dict[str, Any], store: BillingStore) -> None:
    customer_id = subscription.get("customer")
    if not subscription.get("id") or not customer_id:
        raise EventDataError("Subscription event without id or customer")

    user_id = _resolve_user_id(store, customer_id)
    if not user_id:
        raise EventDataError(f"No WinProd user for Stripe customer {customer_id}")

    plan_id = (_first_item(subscription).get("price") or {}).get("id")
    store.upsert_subscription(
        {
            "user_id": user_id,
            "stripe_subscription_id": subscription["id"],
            "stripe_customer_id": customer_id,
            "plan_id": plan_id,
            "status": subscription.get("status"),
            "current_period_end": _period_end(subscription),
            "cancel_at": epoch_to_iso(subscription.get("cancel_at")),
            "updated_at": utc_now(),
        },
        on_conflict="stripe_subscription_id",
    )
    store.set_subscription_state(user_id, "active", tier_for_plan(plan_id))
    klaviyo.notify_subscription_activated(store.get_customer(user_id), "stripe", plan_id or "")


def handle_subscription_updated(subscription: dict[str, Any], store: BillingStore) -> None:
    if not subscription.get("id"):
        raise EventDataError("Subscription event without id")
    store.update_subscription(
        "stripe_subscription_id",
        subscription["id"],
        {
            "status": subscription.get("status"),
            "current_period_end": _period_end(subscription),
            "cancel_at": epoch_to_iso(subscription.get("cancel_at")),
            "updated_at": utc_now(),
        },
    )


def handle_subscription_deleted(subscription: dict[str, Any], store: BillingStore) -> None:
    customer_id = subscription.get("customer")
    customer = store.get_customer_by_stripe_id(customer_id) if customer_id else None
    if not customer:
        logger.info("Ignoring deletion of %s: unknown Stripe customer %s", subscription.get("id"), customer_id)
        return

    store.set_subscription_state(customer["user_id"], "inactive", "free")
    store.update_subscription(
        "stripe_subscription_id",
        subscription.get("id"),
        {"status": "canceled", "updated_at": utc_now()},
    )
    klaviyo.notify_subscription_cancelled(customer, "stripe")


def handle_charge_succeeded(charge: dict[str, Any], store: BillingStore) -> None:
    customer_id = charge.get("customer")
    customer = store.get_customer_by_stripe_id(customer_id) if customer_id else None
    if not customer:
        logger.info("Ignoring charge %s: unknown Stripe customer %s", charge.get("id"), customer_id)
        return

    user_id = customer["user_id"]
    subscription = store.get_latest_subscription(user_id)
    method = (charge.get("payment_method_details") or {}).get("type") or "unknown"
    try:
        amount = int(charge.get("amount") or 0) / 100
    except (TypeError, ValueError) as e:
        raise EventDataError(f"Invalid charge amount: {charge.get('amount')!r}") from e
    store.record_payment(
        user_id=user_id,
        subscription_id=subscription["id"] if subscription else None,
        amount=amount,
        currency=charge.get("currency") or "usd",
        status=charge.get("status") or "succeeded",
        payment_method=method,
    )


HANDLERS = {
    "customer.subscription.created": handle_subscription_created,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "charge.succeeded": handle_charge_succeeded,
}
