"""Webhook event normalization and routing.

Stripe and PayPal wrap their events differently: Stripe puts the object
under `data.object` and the kind under `type`, PayPal uses `resource` and
`event_type`. `parse_event` reduces both to a WebhookEvent and
`dispatch_event` hands the resource to the provider's handler table.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from winprod.db.store import BillingStore
from winprod.webhooks import paypal_events, stripe_events

logger = logging.getLogger(__name__)

# Maximum length of a payload value copied into log lines
_MAX_FIELD_LENGTH = 120

Handler = Callable[[dict[str, Any], BillingStore], None]

_PROVIDER_HANDLERS: dict[str, dict[str, Handler]] = {
    "stripe": stripe_events.HANDLERS,
    "paypal": paypal_events.HANDLERS,
}


@dataclass
class WebhookEvent:
    """Normalized webhook event ready for dispatch."""

    provider: str
    event_type: str
    event_id: str
    resource: dict[str, Any] = field(default_factory=dict)
    summary: str = ""


def _sanitize_field(value: Any) -> str:
    """Flatten a payload value for a single log line."""
    if value is None:
        return ""
    s = re.sub(r"\s+", " ", str(value)).strip()
    if len(s) > _MAX_FIELD_LENGTH:
        s = s[:_MAX_FIELD_LENGTH] + "..."
    return s


def _stripe_summary(obj: dict[str, Any]) -> str:
    currency = _sanitize_field(obj.get("currency") or "usd").upper()
    try:
        amount_fmt = f"{int(obj['amount']) / 100:.2f} {currency}"
    except (KeyError, TypeError, ValueError):
        amount_fmt = ""
    return f"{_sanitize_field(obj.get('id'))} {amount_fmt}".strip()


def _paypal_summary(resource: dict[str, Any]) -> str:
    amount = resource.get("amount")
    amount_fmt = ""
    if isinstance(amount, dict) and amount.get("value"):
        amount_fmt = f"{_sanitize_field(amount.get('value'))} {_sanitize_field(amount.get('currency_code'))}"
    return f"{_sanitize_field(resource.get('id'))} {amount_fmt}".strip()


def parse_event(provider: str, payload: dict[str, Any]) -> WebhookEvent | None:
    """Normalize a verified webhook payload.

    Args:
        provider: 'stripe' or 'paypal'
        payload: Parsed JSON body

    Returns:
        WebhookEvent, or None when the payload lacks an event type or object
    """
    if not isinstance(payload, dict):
        return None

    if provider == "stripe":
        event_type = payload.get("type")
        data = payload.get("data")
        resource = data.get("object") if isinstance(data, dict) else None
        summary = _stripe_summary(resource) if isinstance(resource, dict) else ""
    elif provider == "paypal":
        event_type = payload.get("event_type")
        resource = payload.get("resource")
        summary = _paypal_summary(resource) if isinstance(resource, dict) else ""
    else:
        logger.warning("Unknown webhook provider: %s", provider)
        return None

    if not event_type or not isinstance(resource, dict):
        return None

    return WebhookEvent(
        provider=provider,
        event_type=str(event_type),
        event_id=str(payload.get("id") or ""),
        resource=resource,
        summary=summary,
    )


def is_handled(event: WebhookEvent) -> bool:
    return event.event_type in _PROVIDER_HANDLERS.get(event.provider, {})


def dispatch_event(event: WebhookEvent, store: BillingStore) -> bool:
    """Apply an event to the billing tables.

    Returns:
        True if a handler ran, False if the event type is not handled.
        Handler exceptions propagate to the caller.
    """
    handler = _PROVIDER_HANDLERS.get(event.provider, {}).get(event.event_type)
    if handler is None:
        logger.info("Unhandled %s webhook event: %s", event.provider, event.event_type)
        return False

    logger.info("Applying %s/%s: %s", event.provider, event.event_type, event.summary)
    handler(event.resource, store)
    return True
