"""Webhook signature verification for Stripe and PayPal.

Security contract:
- Stripe: HMAC-SHA256 over "{t}.{body}", compared with hmac.compare_digest()
- Stripe timestamp tolerance: 300s either way (replay protection)
- PayPal: certificate signature checked by PayPal's verify API
- Missing secret or webhook id -> verification always fails (fail-closed)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Any

from winprod import config
from winprod.payments import paypal

logger = logging.getLogger(__name__)

STRIPE_TIMESTAMP_TOLERANCE = 300


def _parse_stripe_header(header: str) -> tuple[int | None, list[str]]:
    timestamp = None
    signatures: list[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def verify_stripe(body: bytes, signature_header: str | None, now: float | None = None) -> bool:
    """Verify a Stripe-Signature header (v1 scheme).

    Header format: t=<timestamp>,v1=<hex>[,v1=<hex>...][,v0=<deprecated>]

    Args:
        body: Raw request body, exactly as received.
        signature_header: Value of the Stripe-Signature header.
        now: Current epoch seconds (defaults to time.time()).

    Returns:
        True if one v1 signature matches and the timestamp is fresh.
    """
    secret = config.STRIPE_WEBHOOK_SECRET
    if not secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not set, rejecting webhook")
        return False
    if not signature_header:
        return False

    timestamp, signatures = _parse_stripe_header(signature_header)
    if timestamp is None or not signatures:
        return False

    current = time.time() if now is None else now
    if abs(current - timestamp) > STRIPE_TIMESTAMP_TOLERANCE:
        logger.warning("Stripe webhook timestamp outside tolerance: %s", timestamp)
        return False

    expected = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.".encode("utf-8") + body,
        hashlib.sha256,
    ).hexdigest()
    return any(hmac.compare_digest(expected, sig) for sig in signatures)


def verify_paypal(body: bytes, headers: dict[str, str], event: dict[str, Any]) -> bool:
    """Verify a PayPal webhook delivery.

    Args:
        body: Raw request body.
        headers: Request headers with lowercase keys.
        event: Parsed JSON body.
    """
    webhook_id = config.PAYPAL_WEBHOOK_ID
    if not webhook_id:
        logger.warning("PAYPAL_WEBHOOK_ID not set, rejecting webhook")
        return False
    logger.debug(
        "PayPal signed message: %s",
        paypal.expected_signature_message(
            headers.get("paypal-transmission-id", ""),
            headers.get("paypal-transmission-time", ""),
            webhook_id,
            body,
        ),
    )
    return paypal.verify_webhook_signature(headers, event, webhook_id)
