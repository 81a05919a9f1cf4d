"""Supabase data access: client factory and billing tables."""

from winprod.db.client import get_supabase, set_supabase
from winprod.db.store import BillingStore, get_billing_store

__all__ = ["BillingStore", "get_billing_store", "get_supabase", "set_supabase"]
