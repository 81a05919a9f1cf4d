"""Supabase client factory.

The backend always talks to Supabase with the service-role key, which
bypasses row level security. It must never reach the browser.
"""

from __future__ import annotations

import logging

from supabase import Client, create_client

from winprod import config
from winprod.errors import ConfigurationError

logger = logging.getLogger(__name__)

_client: Client | None = None


def get_supabase() -> Client:
    """Get or create the shared service-role Supabase client."""
    global _client
    if _client is None:
        if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_KEY:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
        _client = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)
        logger.info("Supabase client created for %s", config.SUPABASE_URL)
    return _client


def set_supabase(client: Client | None) -> None:
    """Replace the shared client (None resets to lazy creation)."""
    global _client
    _client = client
