"""Webhook deduplication in Redis.

Security contract:
- Event ids are marked with SET NX and a 24h TTL
- Duplicates are answered 200 so the provider stops retrying
- A failed delivery releases its mark so the provider's retry is applied
- Key pattern: webhook:seen:{provider}:{event_id}
- If Redis is down, deliveries are let through (fail-open for availability);
  every handler is safe to apply twice
"""

from __future__ import annotations

import logging

import redis

from winprod import config

logger = logging.getLogger(__name__)

DEDUP_TTL_SECONDS = 86400

_KEY_PREFIX = "webhook:seen"

_redis: redis.Redis | None = None


def _get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.from_url(config.REDIS_URL, decode_responses=True)
    return _redis


def _key(provider: str, event_id: str) -> str:
    return f"{_KEY_PREFIX}:{provider}:{event_id}"


def is_duplicate(provider: str, event_id: str) -> bool:
    """Atomically check and mark an event id as seen.

    Returns:
        True if the id was already marked (duplicate delivery).
    """
    if not event_id:
        return False

    try:
        was_set = _get_redis().set(_key(provider, event_id), "1", nx=True, ex=DEDUP_TTL_SECONDS)
    except redis.RedisError:
        logger.warning(
            "Redis unavailable for webhook dedup, allowing %s/%s", provider, event_id, exc_info=True
        )
        return False

    if not was_set:
        logger.info("Duplicate webhook skipped: %s/%s", provider, event_id)
        return True
    return False


def release(provider: str, event_id: str) -> None:
    """Forget an event id after a failed delivery."""
    if not event_id:
        return
    try:
        _get_redis().delete(_key(provider, event_id))
    except redis.RedisError:
        logger.warning("Failed to release webhook mark: %s/%s", provider, event_id)
