"""Bounded retry with exponential backoff and jitter.

Used by the HTTP clients for their small, fixed number of in-call retries.
Protocol-level retries (re-attesting a rejected claim) are NOT done here;
they are explicit state transitions in the orchestrator.

Usage:
    @with_retry(max_attempts=3, retry_on=(httpx.TimeoutException,))
    def fetch_status():
        return client.get("/attestations/abc")
"""

import logging
import random
import time
from functools import wraps
from typing import Callable, Tuple, Type

logger = logging.getLogger(__name__)

# No caller may ask for more in-call attempts than this
MAX_ATTEMPTS_CAP = 5


def backoff_delay(
    attempt: int,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """Delay before retry number ``attempt`` (1-based)."""
    delay = min(initial_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


def with_retry(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    reraise_on: Tuple[Type[Exception], ...] = (),
    sleep: Callable[[float], None] = time.sleep,
):
    """Retry decorator with exponential backoff and jitter.

    Args:
        max_attempts: Attempts including the first try; clamped to
            ``[1, MAX_ATTEMPTS_CAP]``.
        initial_delay: Starting delay in seconds (multiplied each retry)
        max_delay: Cap on a single delay
        exponential_base: Multiplier for each retry
        jitter: Add randomness to prevent thundering herd
        retry_on: Exception types that trigger retry
        reraise_on: Exception types that abort immediately (checked first)
        sleep: Sleep function, swappable in tests

    The last exception is re-raised unchanged once attempts are exhausted.
    """
    attempts = max(1, min(max_attempts, MAX_ATTEMPTS_CAP))

    def decorator(func: Callable):
        name = getattr(func, "__name__", "unknown")

        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except reraise_on:
                    raise
                except retry_on as exc:
                    if attempt >= attempts:
                        logger.error("Giving up on %s after %d attempts: %s", name, attempts, exc)
                        raise
                    delay = backoff_delay(attempt, initial_delay, max_delay, exponential_base, jitter)
                    logger.warning(
                        "Retry %d/%d for %s after %.2fs: %s", attempt, attempts, name, delay, exc
                    )
                    sleep(delay)
            raise RuntimeError(f"Retry loop for {name} exited without a result")

        return wrapper

    return decorator
