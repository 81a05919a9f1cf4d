"""PayPal event handlers: subscription activation, cancellation, captures.

Each handler receives the event's `resource` dict. Missing fields and
unknown records raise EventDataError, which the HTTP layer turns into a
500 so PayPal redelivers.
"""

from __future__ import annotations

import logging
from typing import Any

from winprod.db.store import BillingStore, utc_now
from winprod.errors import EventDataError
from winprod.marketing import klaviyo
from winprod.plans import tier_for_plan

logger = logging.getLogger(__name__)


def handle_subscription_activated(resource: dict[str, Any], store: BillingStore) -> None:
    subscription_id = resource.get("id")
    payer_id = (resource.get("subscriber") or {}).get("payer_id")
    plan_id = resource.get("plan_id")
    if not subscription_id or not payer_id or not plan_id:
        raise EventDataError("Missing required subscription data")

    customer = store.get_customer_by_paypal_id(payer_id)
    if not customer:
        raise EventDataError(f"Customer not found for PayPal payer {payer_id}")

    user_id = customer["user_id"]
    store.upsert_subscription(
        {
            "user_id": user_id,
            "paypal_subscription_id": subscription_id,
            "paypal_customer_id": payer_id,
            "plan_id": plan_id,
            "status": "active",
            "current_period_end": (resource.get("billing_info") or {}).get("next_billing_time"),
            "updated_at": utc_now(),
        },
        on_conflict="paypal_subscription_id",
    )
    store.set_subscription_state(user_id, "active", tier_for_plan(plan_id))
    klaviyo.notify_subscription_activated(customer, "paypal", plan_id)


def handle_subscription_cancelled(resource: dict[str, Any], store: BillingStore) -> None:
    subscription_id = resource.get("id")
    if not subscription_id:
        raise EventDataError("Missing subscription ID")

    subscription = store.get_subscription_by_paypal_id(subscription_id)
    if not subscription:
        raise EventDataError(f"Subscription not found: {subscription_id}")

    now = utc_now()
    store.update_subscription(
        "paypal_subscription_id",
        subscription_id,
        {"status": "cancelled", "updated_at": now, "cancel_at": now},
    )
    store.set_subscription_state(subscription["user_id"], "inactive", "free")
    klaviyo.notify_subscription_cancelled(store.get_customer(subscription["user_id"]), "paypal")


def handle_payment_captured(resource: dict[str, Any], store: BillingStore) -> None:
    subscription_id = resource.get("subscription_id")
    amount = resource.get("amount")
    if not isinstance(amount, dict):
        amount = {}
    value = amount.get("value")
    currency = amount.get("currency_code")
    if not subscription_id or not value or not currency:
        raise EventDataError("Missing required payment data")

    subscription = store.get_subscription_by_paypal_id(subscription_id)
    if not subscription:
        raise EventDataError(f"Subscription not found: {subscription_id}")

    try:
        parsed = float(value)
    except (TypeError, ValueError) as e:
        raise EventDataError(f"Invalid capture amount: {value!r}") from e

    store.record_payment(
        user_id=subscription["user_id"],
        subscription_id=subscription["id"],
        amount=parsed,
        currency=currency,
        status="completed",
        payment_method="paypal",
    )


HANDLERS = {
    "BILLING.SUBSCRIPTION.ACTIVATED": handle_subscription_activated,
    "BILLING.SUBSCRIPTION.CANCELLED": handle_subscription_cancelled,
    "PAYMENT.CAPTURE.COMPLETED": handle_payment_captured,
}
