"""Retry outbound HTTP calls (PayPal, reCAPTCHA, Klaviyo) with backoff.

Retries on 408/429/5xx responses and on connection-level failures. A
Retry-After header, when present, replaces the computed delay.
"""

from __future__ import annotations

import functools
import logging
import random
import time
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

_TRANSIENT_ERRORS = (httpx.ConnectError, httpx.ReadTimeout, httpx.WriteTimeout, httpx.PoolTimeout)


def with_backoff(
    max_retries: int = 2,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: float = 0.2,
) -> Callable:
    """Decorator retrying an httpx-based call with exponential backoff.

    The wrapped function must raise (for example via
    `response.raise_for_status()`) for a status code to be retried.

    Args:
        max_retries: Attempts after the first one.
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any single delay.
        jitter: Fraction of the delay added or removed at random.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return fn(*args, **kwargs)
                except httpx.HTTPStatusError as e:
                    status = e.response.status_code
                    if status not in RETRYABLE_STATUS_CODES or attempt >= max_retries:
                        raise
                    delay = backoff_delay(attempt, base_delay, max_delay, jitter, e.response)
                    logger.warning(
                        "%s got HTTP %d, retry %d/%d in %.2fs",
                        fn.__name__, status, attempt + 1, max_retries, delay,
                    )
                except _TRANSIENT_ERRORS as e:
                    if attempt >= max_retries:
                        raise
                    delay = backoff_delay(attempt, base_delay, max_delay, jitter)
                    logger.warning(
                        "%s failed (%s), retry %d/%d in %.2fs",
                        fn.__name__, type(e).__name__, attempt + 1, max_retries, delay,
                    )
                time.sleep(delay)
                attempt += 1

        return wrapper

    return decorator


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float,
    response: httpx.Response | None = None,
) -> float:
    """Delay before retry number `attempt + 1`."""
    if response is not None:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return min(float(retry_after), max_delay)
            except ValueError:
                pass

    delay = min(base_delay * (2**attempt), max_delay)
    spread = delay * jitter
    return max(0.05, delay + random.uniform(-spread, spread))
