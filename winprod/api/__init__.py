"""Browser-facing API endpoints (checkout, reCAPTCHA, account)."""
