"""Tests for Stripe subscription and charge handlers."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from winprod.errors import EventDataError
from winprod.webhooks import stripe_events

PERIOD_END = 1_780_000_000  # 2026-05-28T20:26:40Z


def _subscription(**overrides):
    sub = {
        "id": "sub_1",
        "customer": "cus_123",
        "status": "active",
        "current_period_end": PERIOD_END,
        "cancel_at": None,
        "items": {"data": [{"price": {"id": "price_monthly_pro"}}]},
    }
    sub.update(overrides)
    return sub


def test_epoch_to_iso():
    assert stripe_events.epoch_to_iso(0) is None
    assert stripe_events.epoch_to_iso(None) is None
    assert stripe_events.epoch_to_iso(PERIOD_END) == "2026-05-28T20:26:40+00:00"


class TestSubscriptionCreated:

    def test_inserts_subscription_and_upgrades_customer(self, store, fake_db, customer):
        stripe_events.handle_subscription_created(_subscription(), store)

        sub = fake_db.rows("subscriptions")[0]
        assert sub["user_id"] == "user-1"
        assert sub["stripe_subscription_id"] == "sub_1"
        assert sub["stripe_customer_id"] == "cus_123"
        assert sub["plan_id"] == "price_monthly_pro"
        assert sub["status"] == "active"
        assert sub["current_period_end"] == "2026-05-28T20:26:40+00:00"
        assert sub["cancel_at"] is None

        cust = fake_db.rows("customers")[0]
        assert cust["subscription_status"] == "active"
        assert cust["subscription_tier"] == "pro"

    def test_period_end_from_items(self, store, fake_db, customer):
        sub = _subscription(current_period_end=None)
        sub["items"]["data"][0]["current_period_end"] = PERIOD_END
        stripe_events.handle_subscription_created(sub, store)
        assert fake_db.rows("subscriptions")[0]["current_period_end"] == "2026-05-28T20:26:40+00:00"

    def test_replay_does_not_duplicate(self, store, fake_db, customer):
        stripe_events.handle_subscription_created(_subscription(), store)
        stripe_events.handle_subscription_created(_subscription(), store)
        assert len(fake_db.rows("subscriptions")) == 1

    @patch("winprod.webhooks.stripe_events.retrieve_customer_user_id", return_value="user-7")
    def test_falls_back_to_stripe_metadata(self, mock_lookup, store, fake_db):
        stripe_events.handle_subscription_created(_subscription(customer="cus_new"), store)
        mock_lookup.assert_called_once_with("cus_new")
        assert fake_db.rows("subscriptions")[0]["user_id"] == "user-7"

    @patch("winprod.webhooks.stripe_events.retrieve_customer_user_id", return_value=None)
    def test_unknown_user_raises(self, mock_lookup, store):
        with pytest.raises(EventDataError):
            stripe_events.handle_subscription_created(_subscription(customer="cus_ghost"), store)

    @patch("winprod.webhooks.stripe_events.klaviyo.notify_subscription_activated")
    def test_notifies_marketing(self, mock_notify, store, customer):
        stripe_events.handle_subscription_created(_subscription(), store)
        args = mock_notify.call_args.args
        assert args[0]["email"] == "jane@example.com"
        assert args[1:] == ("stripe", "price_monthly_pro")


class TestSubscriptionUpdated:

    def test_updates_status_and_dates(self, store, fake_db, customer):
        stripe_events.handle_subscription_created(_subscription(), store)
        stripe_events.handle_subscription_updated(
            _subscription(status="past_due", cancel_at=PERIOD_END), store
        )
        sub = fake_db.rows("subscriptions")[0]
        assert sub["status"] == "past_due"
        assert sub["cancel_at"] == "2026-05-28T20:26:40+00:00"

    def test_missing_id_raises(self, store):
        with pytest.raises(EventDataError):
            stripe_events.handle_subscription_updated({"status": "active"}, store)


class TestSubscriptionDeleted:

    def test_downgrades_customer(self, store, fake_db, customer):
        stripe_events.handle_subscription_created(_subscription(), store)
        stripe_events.handle_subscription_deleted(_subscription(status="canceled"), store)

        assert fake_db.rows("subscriptions")[0]["status"] == "canceled"
        cust = fake_db.rows("customers")[0]
        assert (cust["subscription_status"], cust["subscription_tier"]) == ("inactive", "free")

    @patch("winprod.webhooks.stripe_events.klaviyo.notify_subscription_cancelled")
    def test_notifies_marketing(self, mock_notify, store, customer):
        stripe_events.handle_subscription_created(_subscription(), store)
        stripe_events.handle_subscription_deleted(_subscription(status="canceled"), store)

        customer_row, provider = mock_notify.call_args.args
        assert customer_row["email"] == "jane@example.com"
        assert provider == "stripe"

    def test_unknown_customer_ignored(self, store, fake_db):
        stripe_events.handle_subscription_deleted(_subscription(customer="cus_ghost"), store)
        assert fake_db.calls[-1][1] == "select"


class TestChargeSucceeded:

    def _charge(self, **overrides):
        charge = {
            "id": "ch_1",
            "customer": "cus_123",
            "amount": 2999,
            "currency": "usd",
            "status": "succeeded",
            "payment_method_details": {"type": "card"},
        }
        charge.update(overrides)
        return charge

    def test_records_payment_linked_to_subscription(self, store, fake_db, customer):
        stripe_events.handle_subscription_created(_subscription(), store)
        sub_id = fake_db.rows("subscriptions")[0]["id"]

        stripe_events.handle_charge_succeeded(self._charge(), store)

        payment = fake_db.rows("payment_history")[0]
        assert payment["user_id"] == "user-1"
        assert payment["subscription_id"] == sub_id
        assert payment["amount"] == 29.99
        assert payment["currency"] == "USD"
        assert payment["status"] == "succeeded"
        assert payment["payment_method"] == "card"

    def test_one_off_charge_without_subscription(self, store, fake_db, customer):
        stripe_events.handle_charge_succeeded(self._charge(payment_method_details=None), store)
        payment = fake_db.rows("payment_history")[0]
        assert payment["subscription_id"] is None
        assert payment["payment_method"] == "unknown"

    def test_unknown_customer_ignored(self, store, fake_db):
        stripe_events.handle_charge_succeeded(self._charge(customer="cus_ghost"), store)
        assert fake_db.rows("payment_history") == []
