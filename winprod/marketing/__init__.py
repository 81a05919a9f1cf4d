"""Email marketing integrations."""
