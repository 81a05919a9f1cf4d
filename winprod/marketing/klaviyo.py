"""Klaviyo REST integration for list membership and event tracking.

Marketing calls are best-effort: every public function returns a bool and
never raises, so a Klaviyo outage cannot fail a billing webhook.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from winprod import config
from winprod.retry import with_backoff

logger = logging.getLogger(__name__)

KLAVIYO_API_ENDPOINT = "https://a.klaviyo.com/api"
KLAVIYO_REVISION = "2023-12-15"


@dataclass
class KlaviyoProfile:
    email: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    external_id: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)

    def to_attributes(self) -> dict[str, Any]:
        attributes = {
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone_number": self.phone,
            "external_id": self.external_id,
            "properties": self.properties or None,
        }
        return {k: v for k, v in attributes.items() if v is not None}


@with_backoff(max_retries=2)
def _request(method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
    response = httpx.request(
        method,
        f"{KLAVIYO_API_ENDPOINT}{endpoint}",
        headers={
            "Authorization": f"Klaviyo-API-Key {config.KLAVIYO_API_KEY}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "revision": KLAVIYO_REVISION,
        },
        timeout=10.0,
        **kwargs,
    )
    response.raise_for_status()
    return response


def _enabled(action: str) -> bool:
    if not config.KLAVIYO_API_KEY:
        logger.debug("KLAVIYO_API_KEY not set, skipping %s", action)
        return False
    return True


def subscribe_to_list(list_id: str, profile: KlaviyoProfile) -> bool:
    """Add a profile to a Klaviyo list."""
    if not _enabled("subscribe") or not list_id:
        return False
    try:
        _request(
            "POST",
            f"/lists/{list_id}/relationships/profiles/",
            json={"data": [{"type": "profile", "attributes": profile.to_attributes()}]},
        )
    except httpx.HTTPError:
        logger.warning("Klaviyo subscribe to %s failed for %s", list_id, profile.email, exc_info=True)
        return False
    return True


def unsubscribe_from_list(list_id: str, email: str) -> bool:
    """Remove the profile with `email` from a Klaviyo list."""
    if not _enabled("unsubscribe") or not list_id:
        return False
    try:
        found = _request("GET", "/profiles/", params={"filter": f'equals(email,"{email}")'}).json()
        profiles = found.get("data") or []
        if not profiles:
            logger.info("Klaviyo profile not found for %s", email)
            return False
        _request(
            "DELETE",
            f"/lists/{list_id}/relationships/profiles/",
            json={"data": [{"type": "profile", "id": profiles[0]["id"]}]},
        )
    except (httpx.HTTPError, ValueError, KeyError):
        logger.warning("Klaviyo unsubscribe from %s failed for %s", list_id, email, exc_info=True)
        return False
    return True


def track_event(event_name: str, email: str, properties: dict[str, Any] | None = None) -> bool:
    """Record a metric event against the profile with `email`."""
    if not _enabled("track"):
        return False
    payload = {
        "data": {
            "type": "event",
            "attributes": {
                "metric": {"data": {"type": "metric", "attributes": {"name": event_name}}},
                "profile": {"data": {"type": "profile", "attributes": {"email": email}}},
                "properties": properties or {},
            },
        }
    }
    try:
        _request("POST", "/events/", json=payload)
    except httpx.HTTPError:
        logger.warning("Klaviyo event %s failed for %s", event_name, email, exc_info=True)
        return False
    return True


def subscribe_to_newsletter(profile: KlaviyoProfile) -> bool:
    return subscribe_to_list(config.KLAVIYO_NEWSLETTER_LIST_ID, profile)


def subscribe_customer(profile: KlaviyoProfile) -> bool:
    return subscribe_to_list(config.KLAVIYO_CUSTOMERS_LIST_ID, profile)


def add_to_abandoned_cart(profile: KlaviyoProfile) -> bool:
    return subscribe_to_list(config.KLAVIYO_ABANDONED_CART_LIST_ID, profile)


def add_to_pro_users(profile: KlaviyoProfile) -> bool:
    return subscribe_to_list(config.KLAVIYO_PRO_USERS_LIST_ID, profile)


def notify_subscription_activated(customer: dict[str, Any] | None, provider: str, plan_id: str) -> None:
    """Add a newly paying customer to the pro list and track the upgrade."""
    if not customer or not customer.get("email"):
        return
    profile = KlaviyoProfile(
        email=customer["email"],
        first_name=customer.get("full_name"),
        external_id=customer.get("user_id"),
    )
    add_to_pro_users(profile)
    track_event("Subscription Activated", customer["email"], {"provider": provider, "plan_id": plan_id})
    unsubscribe_from_list(config.KLAVIYO_ABANDONED_CART_LIST_ID, customer["email"])


def notify_checkout_started(email: str | None, user_id: str, price_id: str) -> None:
    """Put a customer who opened checkout on the abandoned-cart list until they pay."""
    if not email:
        return
    add_to_abandoned_cart(KlaviyoProfile(email=email, external_id=user_id, properties={"price_id": price_id}))


def notify_subscription_cancelled(customer: dict[str, Any] | None, provider: str) -> None:
    if not customer or not customer.get("email"):
        return
    unsubscribe_from_list(config.KLAVIYO_PRO_USERS_LIST_ID, customer["email"])
    track_event("Subscription Cancelled", customer["email"], {"provider": provider})
