"""Payment webhooks.

Receives subscription and payment events from Stripe and PayPal. Each
delivery is signature-verified, deduplicated, and applied to the billing
tables before the provider gets its 200.
"""
