"""Billing tables: customers, subscriptions, payment_history.

Every query goes through `_execute` so a PostgREST failure surfaces as a
StoreError naming the table. Lookups return a row dict or None; they never
use `.single()` because PostgREST answers "no rows" with an error there.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from postgrest.exceptions import APIError

from winprod.db.client import get_supabase
from winprod.errors import StoreError

logger = logging.getLogger(__name__)

CUSTOMERS = "customers"
SUBSCRIPTIONS = "subscriptions"
PAYMENT_HISTORY = "payment_history"


def utc_now() -> str:
    """Current time as an ISO-8601 UTC timestamp (timestamptz column format)."""
    return datetime.now(timezone.utc).isoformat()


def _execute(table: str, query: Any) -> list[dict[str, Any]]:
    try:
        response = query.execute()
    except APIError as e:
        raise StoreError(table, e.message or str(e)) from e
    return response.data or []


class BillingStore:
    """Customer, subscription and payment records for one Supabase client."""

    def __init__(self, client: Any = None):
        self._client = client if client is not None else get_supabase()

    def _table(self, name: str) -> Any:
        return self._client.table(name)

    def _first(self, table: str, column: str, value: Any, columns: str = "*") -> dict | None:
        rows = _execute(table, self._table(table).select(columns).eq(column, value).limit(1))
        return rows[0] if rows else None

    # -- customers ---------------------------------------------------------

    def get_customer(self, user_id: str) -> dict | None:
        return self._first(CUSTOMERS, "user_id", user_id)

    def get_customer_by_stripe_id(self, stripe_customer_id: str) -> dict | None:
        return self._first(CUSTOMERS, "stripe_customer_id", stripe_customer_id)

    def get_customer_by_paypal_id(self, paypal_customer_id: str) -> dict | None:
        return self._first(CUSTOMERS, "paypal_customer_id", paypal_customer_id)

    def ensure_customer(self, user_id: str, email: str, full_name: str | None = None) -> dict:
        """Create or refresh the customer row for a signed-in user.

        New rows start on the free/basic plan. The full name defaults to the
        local part of the email address.
        """
        row = {
            "user_id": user_id,
            "email": email,
            "full_name": full_name or email.split("@")[0],
            "subscription_status": "free",
            "subscription_tier": "basic",
            "last_login": utc_now(),
        }
        existing = self.get_customer(user_id)
        if existing:
            # Never downgrade a paying or staff customer on login.
            row = {
                "user_id": user_id,
                "email": email,
                "full_name": full_name or existing.get("full_name") or row["full_name"],
                "last_login": row["last_login"],
            }
        rows = _execute(CUSTOMERS, self._table(CUSTOMERS).upsert(row, on_conflict="user_id"))
        return rows[0] if rows else {**(existing or {}), **row}

    def create_customer(
        self,
        user_id: str,
        email: str,
        status: str,
        tier: str,
        full_name: str | None = None,
    ) -> None:
        row = {
            "user_id": user_id,
            "email": email,
            "subscription_status": status,
            "subscription_tier": tier,
        }
        if full_name:
            row["full_name"] = full_name
        _execute(CUSTOMERS, self._table(CUSTOMERS).insert(row))

    def set_stripe_customer_id(self, user_id: str, stripe_customer_id: str) -> None:
        _execute(
            CUSTOMERS,
            self._table(CUSTOMERS)
            .update({"stripe_customer_id": stripe_customer_id})
            .eq("user_id", user_id),
        )

    def set_subscription_state(self, user_id: str, status: str, tier: str) -> None:
        """Set a customer's subscription status and tier."""
        logger.info("Customer %s -> status=%s tier=%s", user_id, status, tier)
        _execute(
            CUSTOMERS,
            self._table(CUSTOMERS)
            .update({"subscription_status": status, "subscription_tier": tier, "updated_at": utc_now()})
            .eq("user_id", user_id),
        )

    def is_admin(self, user_id: str) -> bool:
        rows = _execute(
            CUSTOMERS,
            self._table(CUSTOMERS).select("subscription_tier").eq("user_id", user_id).limit(1),
        )
        return bool(rows) and rows[0].get("subscription_tier") == "admin"

    # -- subscriptions -----------------------------------------------------

    def insert_subscription(self, row: dict[str, Any]) -> None:
        _execute(SUBSCRIPTIONS, self._table(SUBSCRIPTIONS).insert(row))

    def upsert_subscription(self, row: dict[str, Any], on_conflict: str) -> None:
        _execute(SUBSCRIPTIONS, self._table(SUBSCRIPTIONS).upsert(row, on_conflict=on_conflict))

    def update_subscription(self, column: str, value: str, changes: dict[str, Any]) -> None:
        """Apply `changes` to every subscription where `column == value`."""
        _execute(SUBSCRIPTIONS, self._table(SUBSCRIPTIONS).update(changes).eq(column, value))

    def get_subscription_by_paypal_id(self, paypal_subscription_id: str) -> dict | None:
        return self._first(SUBSCRIPTIONS, "paypal_subscription_id", paypal_subscription_id)

    def get_latest_subscription(self, user_id: str) -> dict | None:
        rows = _execute(
            SUBSCRIPTIONS,
            self._table(SUBSCRIPTIONS)
            .select("*")
            .eq("user_id", user_id)
            .order("updated_at", desc=True)
            .limit(1),
        )
        return rows[0] if rows else None

    # -- payments ----------------------------------------------------------

    def record_payment(
        self,
        user_id: str,
        subscription_id: Any,
        amount: float,
        currency: str,
        status: str,
        payment_method: str,
    ) -> None:
        row = {
            "user_id": user_id,
            "subscription_id": subscription_id,
            "amount": amount,
            "currency": currency.upper(),
            "status": status,
            "payment_method": payment_method,
            "created_at": utc_now(),
        }
        logger.info(
            "Recording %s payment of %.2f %s for %s", payment_method, amount, row["currency"], user_id
        )
        _execute(PAYMENT_HISTORY, self._table(PAYMENT_HISTORY).insert(row))

    def list_payments(self, user_id: str) -> list[dict[str, Any]]:
        return _execute(
            PAYMENT_HISTORY,
            self._table(PAYMENT_HISTORY)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True),
        )


_store: BillingStore | None = None


def get_billing_store() -> BillingStore:
    """Get or create the shared BillingStore."""
    global _store
    if _store is None:
        _store = BillingStore()
    return _store


def reset_billing_store() -> None:
    global _store
    _store = None
