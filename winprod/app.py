"""FastAPI application factory.

Run with: uvicorn winprod.app:app
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from winprod import __version__, config
from winprod.api.account import register_account_routes
from winprod.api.checkout import register_checkout_routes
from winprod.api.newsletter import register_newsletter_routes
from winprod.api.recaptcha import register_recaptcha_routes
from winprod.security.middleware import install_security_middleware
from winprod.webhooks.handlers import register_webhook_routes, webhook_counts

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build the app with every route and middleware installed."""
    config.configure_logging()

    app = FastAPI(title="WinProd AI Billing", version=__version__)

    @app.get("/health")
    async def health():
        """Liveness check with per-provider webhook delivery counts."""
        return {"status": "ok", "webhooks": dict(webhook_counts)}

    register_webhook_routes(app)
    register_checkout_routes(app)
    register_recaptcha_routes(app)
    register_account_routes(app)
    register_newsletter_routes(app)

    install_security_middleware(app)
    logger.info("WinProd billing app ready (%d routes)", len(app.routes))
    return app


app = create_app()
