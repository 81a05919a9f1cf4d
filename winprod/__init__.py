"""WinProd AI billing backend.

Server-side half of WinProd AI: Stripe and PayPal webhook receivers,
checkout and reCAPTCHA proxy endpoints, and account lookups over Supabase.
"""

__version__ = "1.0.0"
