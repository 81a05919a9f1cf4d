"""PayPal REST client: OAuth token and webhook signature verification.

PayPal signs `transmission_id|transmission_time|webhook_id|crc32(body)`
with a certificate-backed key (SHA256withRSA). Rather than fetch and pin
certificates here, the signature is checked through PayPal's own
`/v1/notifications/verify-webhook-signature` endpoint.

Security contract:
- Any missing header, credential or transport failure -> invalid (fail-closed)
- Only verification_status == "SUCCESS" is accepted
"""

from __future__ import annotations

import logging
import time
import zlib
from typing import Any

import httpx

from winprod import config
from winprod.errors import ConfigurationError
from winprod.retry import with_backoff

logger = logging.getLogger(__name__)

# Request header -> verify-webhook-signature field
SIGNATURE_HEADERS = {
    "paypal-auth-algo": "auth_algo",
    "paypal-cert-url": "cert_url",
    "paypal-transmission-id": "transmission_id",
    "paypal-transmission-sig": "transmission_sig",
    "paypal-transmission-time": "transmission_time",
}

_TOKEN_REFRESH_MARGIN = 60
_HTTP_TIMEOUT = 15.0

_token_cache: dict[str, Any] = {"token": None, "expires_at": 0.0}


def transmission_crc32(body: bytes) -> int:
    """Unsigned CRC32 of the raw body, as PayPal includes it in the signed message."""
    return zlib.crc32(body) & 0xFFFFFFFF


def expected_signature_message(
    transmission_id: str, transmission_time: str, webhook_id: str, body: bytes
) -> str:
    """The message PayPal signs for a webhook delivery."""
    return f"{transmission_id}|{transmission_time}|{webhook_id}|{transmission_crc32(body)}"


@with_backoff(max_retries=2)
def _post(path: str, **kwargs: Any) -> httpx.Response:
    response = httpx.post(f"{config.PAYPAL_API_BASE}{path}", timeout=_HTTP_TIMEOUT, **kwargs)
    response.raise_for_status()
    return response


def get_access_token() -> str:
    """Client-credentials access token, cached until shortly before expiry."""
    if not config.PAYPAL_CLIENT_ID or not config.PAYPAL_CLIENT_SECRET:
        raise ConfigurationError("PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET must be set")

    now = time.time()
    if _token_cache["token"] and now < _token_cache["expires_at"]:
        return _token_cache["token"]

    response = _post(
        "/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(config.PAYPAL_CLIENT_ID, config.PAYPAL_CLIENT_SECRET),
        headers={"Accept": "application/json"},
    )
    payload = response.json()
    _token_cache["token"] = payload["access_token"]
    _token_cache["expires_at"] = now + int(payload.get("expires_in", 0)) - _TOKEN_REFRESH_MARGIN
    return _token_cache["token"]


def clear_token_cache() -> None:
    _token_cache["token"] = None
    _token_cache["expires_at"] = 0.0


def verify_webhook_signature(
    headers: dict[str, str], event: dict[str, Any], webhook_id: str
) -> bool:
    """Ask PayPal whether a webhook delivery is authentic.

    Args:
        headers: Request headers with lowercase keys.
        event: The parsed webhook body, passed back to PayPal unchanged.
        webhook_id: Id of the webhook subscription in the PayPal dashboard.

    Returns:
        True only when PayPal reports SUCCESS.
    """
    fields: dict[str, Any] = {}
    for header, field_name in SIGNATURE_HEADERS.items():
        value = headers.get(header)
        if not value:
            logger.warning("PayPal webhook missing header %s", header)
            return False
        fields[field_name] = value
    fields["webhook_id"] = webhook_id
    fields["webhook_event"] = event

    try:
        token = get_access_token()
        response = _post(
            "/v1/notifications/verify-webhook-signature",
            json=fields,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )
        status = response.json().get("verification_status")
    except ConfigurationError:
        logger.warning("PayPal credentials not set, rejecting webhook")
        return False
    except (httpx.HTTPError, ValueError, KeyError):
        logger.warning("PayPal signature verification call failed", exc_info=True)
        return False

    if status != "SUCCESS":
        logger.warning(
            "PayPal rejected webhook %s: %s", fields["transmission_id"], status
        )
        return False
    return True
