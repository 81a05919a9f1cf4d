"""Request authentication, CORS and rate limiting."""
