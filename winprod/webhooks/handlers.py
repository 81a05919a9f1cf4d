"""Webhook HTTP handlers: FastAPI routes for Stripe and PayPal.

Each handler:
1. Reads the raw body (needed for signature verification)
2. Verifies the provider signature
3. Parses and normalizes the event
4. Skips duplicate deliveries
5. Applies the event to the billing tables, then answers 200

Security contract:
- Never return internal error details to the webhook caller
- Return 200 for unhandled event types (provider stops retrying)
- Return 500 when applying an event fails, so the provider redelivers
- Log all webhook activity for audit trail
"""

from __future__ import annotations

import json
import logging
import time

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from winprod import config
from winprod.db.store import BillingStore, get_billing_store
from winprod.webhooks.dispatcher import WebhookEvent, dispatch_event, is_handled, parse_event
from winprod.webhooks.idempotency import is_duplicate, release
from winprod.webhooks.verification import verify_paypal, verify_stripe

logger = logging.getLogger(__name__)

# Per-provider delivery counter, reported by /health
webhook_counts: dict[str, int] = {}

_RECEIVED = {"received": True}
_INTERNAL_ERROR = {"error": "Internal server error"}


def _log_webhook(provider: str, event_type: str, event_id: str, status: str) -> None:
    """Audit log for webhook activity."""
    webhook_counts[provider] = webhook_counts.get(provider, 0) + 1
    logger.info(
        "WEBHOOK_AUDIT provider=%s event=%s id=%s status=%s count=%d",
        provider,
        event_type,
        event_id,
        status,
        webhook_counts[provider],
    )


async def _apply_event(event: WebhookEvent, store: BillingStore) -> JSONResponse:
    start = time.time()

    if not is_handled(event):
        _log_webhook(event.provider, event.event_type, event.event_id, "unhandled")
        return JSONResponse(_RECEIVED, status_code=200)

    if is_duplicate(event.provider, event.event_id):
        _log_webhook(event.provider, event.event_type, event.event_id, "duplicate")
        return JSONResponse(_RECEIVED, status_code=200)

    try:
        await run_in_threadpool(dispatch_event, event, store)
    except Exception:
        logger.exception("Failed to apply webhook event %s/%s", event.provider, event.event_type)
        release(event.provider, event.event_id)
        _log_webhook(event.provider, event.event_type, event.event_id, "failed")
        return JSONResponse(_INTERNAL_ERROR, status_code=500)

    _log_webhook(event.provider, event.event_type, event.event_id, "applied")
    logger.debug(
        "Webhook processed in %.1fms: %s/%s",
        (time.time() - start) * 1000,
        event.provider,
        event.event_type,
    )
    return JSONResponse(_RECEIVED, status_code=200)


def _load_json(body: bytes) -> dict | None:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


async def handle_stripe_webhook(request: Request, store: BillingStore) -> JSONResponse:
    body = await request.body()

    if not verify_stripe(body, request.headers.get("stripe-signature")):
        _log_webhook("stripe", "unknown", "unknown", "signature_failed")
        return JSONResponse({"error": "Webhook signature verification failed"}, status_code=400)

    payload = _load_json(body)
    event = parse_event("stripe", payload) if payload is not None else None
    if event is None:
        _log_webhook("stripe", "unknown", "unknown", "invalid_event")
        return JSONResponse({"error": "Invalid event format"}, status_code=400)

    return await _apply_event(event, store)


async def handle_paypal_webhook(request: Request, store: BillingStore) -> JSONResponse:
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}

    if not headers.get("paypal-transmission-sig") or not config.PAYPAL_WEBHOOK_ID:
        _log_webhook("paypal", "unknown", "unknown", "signature_missing")
        return JSONResponse({"error": "Missing PayPal signature or webhook ID"}, status_code=401)

    payload = _load_json(body)
    if payload is None:
        _log_webhook("paypal", "unknown", "unknown", "invalid_json")
        return JSONResponse({"error": "Invalid event format"}, status_code=400)

    if not await run_in_threadpool(verify_paypal, body, headers, payload):
        _log_webhook("paypal", str(payload.get("event_type")), str(payload.get("id")), "signature_failed")
        return JSONResponse({"error": "Invalid webhook signature"}, status_code=401)

    event = parse_event("paypal", payload)
    if event is None:
        _log_webhook("paypal", "unknown", str(payload.get("id")), "invalid_event")
        return JSONResponse({"error": "Invalid event format"}, status_code=400)

    return await _apply_event(event, store)


def register_webhook_routes(app: FastAPI) -> None:
    """Register webhook endpoint routes on the FastAPI app."""

    @app.post("/api/stripe/webhook")
    async def stripe_webhook(request: Request, store: BillingStore = Depends(get_billing_store)):
        """Receive Stripe webhooks (signature-verified)."""
        return await handle_stripe_webhook(request, store)

    @app.post("/api/paypal/webhook")
    async def paypal_webhook(request: Request, store: BillingStore = Depends(get_billing_store)):
        """Receive PayPal webhooks (signature-verified)."""
        return await handle_paypal_webhook(request, store)

    logger.info("Webhook routes registered: /api/{stripe,paypal}/webhook")
