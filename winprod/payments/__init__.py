"""Payment provider clients: Stripe Checkout and PayPal REST."""
