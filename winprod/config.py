"""Environment configuration and logging setup.

All settings come from environment variables, with a `.env` file in the
working directory loaded first (existing variables win). Values are read
once at import; tests patch the module attributes directly.

Missing secrets never fail at import. The operation that needs them fails
closed instead (signature checks reject, clients raise ConfigurationError).
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

# Supabase (service role: bypasses RLS, server-side only)
SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY", "")

# Stripe
STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
STRIPE_PRICE_MONTHLY_PRO = os.environ.get("STRIPE_PRICE_MONTHLY_PRO", "")
STRIPE_PRICE_YEARLY_PRO = os.environ.get("STRIPE_PRICE_YEARLY_PRO", "")

# PayPal
PAYPAL_CLIENT_ID = os.environ.get("PAYPAL_CLIENT_ID", "")
PAYPAL_CLIENT_SECRET = os.environ.get("PAYPAL_CLIENT_SECRET", "")
PAYPAL_WEBHOOK_ID = os.environ.get("PAYPAL_WEBHOOK_ID", "")
PAYPAL_API_BASE = os.environ.get("PAYPAL_API_BASE", "https://api-m.sandbox.paypal.com")
PAYPAL_PLAN_MONTHLY_PRO = os.environ.get("PAYPAL_PLAN_MONTHLY_PRO", "P-48V859456P095382NM64UKFI")
PAYPAL_PLAN_YEARLY_PRO = os.environ.get("PAYPAL_PLAN_YEARLY_PRO", "P-38A5873772451202AM64UM3Q")

# Google reCAPTCHA
RECAPTCHA_SECRET_KEY = os.environ.get("RECAPTCHA_SECRET_KEY", "")
RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"

# Public site (checkout redirects)
SITE_URL = os.environ.get("SITE_URL", "http://localhost:5173").rstrip("/")

# Webhook dedup
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

# HTTP surface
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
TRUSTED_PROXIES = os.environ.get("TRUSTED_PROXIES", "")

# Klaviyo
KLAVIYO_API_KEY = os.environ.get("KLAVIYO_API_KEY", "")
KLAVIYO_NEWSLETTER_LIST_ID = os.environ.get("KLAVIYO_NEWSLETTER_LIST_ID", "")
KLAVIYO_CUSTOMERS_LIST_ID = os.environ.get("KLAVIYO_CUSTOMERS_LIST_ID", "")
KLAVIYO_ABANDONED_CART_LIST_ID = os.environ.get("KLAVIYO_ABANDONED_CART_LIST_ID", "")
KLAVIYO_PRO_USERS_LIST_ID = os.environ.get("KLAVIYO_PRO_USERS_LIST_ID", "")

# Rate limits (slowapi syntax)
RATE_LIMIT_CHECKOUT = os.environ.get("RATE_LIMIT_CHECKOUT", "10/minute")
RATE_LIMIT_RECAPTCHA = os.environ.get("RATE_LIMIT_RECAPTCHA", "20/minute")
RATE_LIMIT_ACCOUNT = os.environ.get("RATE_LIMIT_ACCOUNT", "60/minute")
RATE_LIMIT_NEWSLETTER = os.environ.get("RATE_LIMIT_NEWSLETTER", "5/minute")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_logging_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install the root log handler once. Later calls only adjust the level."""
    global _logging_configured

    resolved = (level or LOG_LEVEL).upper()
    if not _logging_configured:
        logging.basicConfig(level=resolved, format=_LOG_FORMAT)
        _logging_configured = True
    else:
        logging.getLogger().setLevel(resolved)
