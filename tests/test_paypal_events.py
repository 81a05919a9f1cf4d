"""Tests for PayPal subscription and capture handlers."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from winprod.errors import EventDataError
from winprod.webhooks import paypal_events


def _activated(**overrides):
    resource = {
        "id": "I-SUB1",
        "plan_id": "P-48V859456P095382NM64UKFI",
        "subscriber": {"payer_id": "PAYER1"},
        "billing_info": {"next_billing_time": "2026-04-01T10:00:00Z"},
    }
    resource.update(overrides)
    return resource


@pytest.fixture
def paypal_subscription(store, customer, fake_db):
    paypal_events.handle_subscription_activated(_activated(), store)
    return fake_db.rows("subscriptions")[0]


class TestSubscriptionActivated:

    def test_upserts_subscription_and_upgrades(self, store, fake_db, customer):
        paypal_events.handle_subscription_activated(_activated(), store)

        sub = fake_db.rows("subscriptions")[0]
        assert sub["user_id"] == "user-1"
        assert sub["paypal_subscription_id"] == "I-SUB1"
        assert sub["paypal_customer_id"] == "PAYER1"
        assert sub["status"] == "active"
        assert sub["current_period_end"] == "2026-04-01T10:00:00Z"

        cust = fake_db.rows("customers")[0]
        assert (cust["subscription_status"], cust["subscription_tier"]) == ("active", "pro")

    def test_reactivation_updates_same_row(self, store, fake_db, customer):
        paypal_events.handle_subscription_activated(_activated(), store)
        paypal_events.handle_subscription_activated(
            _activated(billing_info={"next_billing_time": "2026-05-01T10:00:00Z"}), store
        )
        rows = fake_db.rows("subscriptions")
        assert len(rows) == 1
        assert rows[0]["current_period_end"] == "2026-05-01T10:00:00Z"

    @pytest.mark.parametrize(
        "overrides",
        [{"id": None}, {"plan_id": ""}, {"subscriber": {}}, {"subscriber": None}],
    )
    def test_missing_fields(self, store, customer, overrides):
        with pytest.raises(EventDataError, match="Missing required subscription data"):
            paypal_events.handle_subscription_activated(_activated(**overrides), store)

    def test_unknown_payer(self, store):
        with pytest.raises(EventDataError, match="Customer not found"):
            paypal_events.handle_subscription_activated(_activated(), store)

    @patch("winprod.webhooks.paypal_events.klaviyo.notify_subscription_activated")
    def test_notifies_marketing(self, mock_notify, store, customer):
        paypal_events.handle_subscription_activated(_activated(), store)
        assert mock_notify.call_args.args[1:] == ("paypal", "P-48V859456P095382NM64UKFI")


class TestSubscriptionCancelled:

    def test_cancels_and_downgrades(self, store, fake_db, paypal_subscription):
        paypal_events.handle_subscription_cancelled({"id": "I-SUB1"}, store)

        sub = fake_db.rows("subscriptions")[0]
        assert sub["status"] == "cancelled"
        assert sub["cancel_at"] == sub["updated_at"]
        cust = fake_db.rows("customers")[0]
        assert (cust["subscription_status"], cust["subscription_tier"]) == ("inactive", "free")

    @patch("winprod.webhooks.paypal_events.klaviyo.notify_subscription_cancelled")
    def test_notifies_marketing(self, mock_notify, store, paypal_subscription):
        paypal_events.handle_subscription_cancelled({"id": "I-SUB1"}, store)

        customer_row, provider = mock_notify.call_args.args
        assert customer_row["user_id"] == "user-1"
        assert provider == "paypal"

    def test_missing_id(self, store):
        with pytest.raises(EventDataError, match="Missing subscription ID"):
            paypal_events.handle_subscription_cancelled({}, store)

    def test_unknown_subscription(self, store):
        with pytest.raises(EventDataError, match="Subscription not found"):
            paypal_events.handle_subscription_cancelled({"id": "I-GHOST"}, store)


class TestPaymentCaptured:

    def _capture(self, **overrides):
        resource = {
            "id": "CAP-1",
            "subscription_id": "I-SUB1",
            "amount": {"value": "19.99", "currency_code": "usd"},
        }
        resource.update(overrides)
        return resource

    def test_records_payment(self, store, fake_db, paypal_subscription):
        paypal_events.handle_payment_captured(self._capture(), store)

        payment = fake_db.rows("payment_history")[0]
        assert payment["user_id"] == "user-1"
        assert payment["subscription_id"] == paypal_subscription["id"]
        assert payment["amount"] == 19.99
        assert payment["currency"] == "USD"
        assert payment["status"] == "completed"
        assert payment["payment_method"] == "paypal"

    @pytest.mark.parametrize(
        "overrides",
        [{"subscription_id": None}, {"amount": {"currency_code": "USD"}}, {"amount": {"value": "1.00"}}],
    )
    def test_missing_fields(self, store, paypal_subscription, overrides):
        with pytest.raises(EventDataError, match="Missing required payment data"):
            paypal_events.handle_payment_captured(self._capture(**overrides), store)

    def test_unknown_subscription(self, store):
        with pytest.raises(EventDataError, match="Subscription not found"):
            paypal_events.handle_payment_captured(self._capture(subscription_id="I-GHOST"), store)

    def test_non_numeric_amount(self, store, paypal_subscription):
        with pytest.raises(EventDataError, match="Invalid capture amount"):
            paypal_events.handle_payment_captured(
                self._capture(amount={"value": "lots", "currency_code": "USD"}), store
            )
