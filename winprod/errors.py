"""Exception hierarchy shared across the billing backend."""

from __future__ import annotations


class WinProdError(Exception):
    """Base class for all application errors."""


class ConfigurationError(WinProdError):
    """A required setting (API key, URL, secret) is missing."""


class StoreError(WinProdError):
    """A Supabase query failed."""

    def __init__(self, table: str, message: str) -> None:
        super().__init__(f"{table}: {message}")
        self.table = table


class EventDataError(WinProdError):
    """A webhook event is missing data or references unknown records."""


class PaymentProviderError(WinProdError):
    """A call to Stripe, PayPal or another provider failed."""
