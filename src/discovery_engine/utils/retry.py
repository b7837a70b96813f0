"""
Bounded retry with exponential backoff for store-level write races.

Stores use this to absorb ConcurrencyConflictError internally so callers only
ever see a successful write or a StoreUnavailableError.
"""

from __future__ import annotations

import functools
import time
from typing import Callable, Optional, Tuple, Type

from discovery_engine.utils.errors import (
    ConcurrencyConflictError,
    StoreUnavailableError,
)
from discovery_engine.utils.logging_config import logger


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (ConcurrencyConflictError,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential calculation (delay *= base)
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)

    Raises:
        StoreUnavailableError: When every attempt failed with a retryable error.

    Example:
        @exponential_backoff(max_retries=3)
        def append(session_id, ids):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    if attempt >= max_retries:
                        logger.error(
                            "%s failed after %s attempts: %s",
                            func.__name__,
                            attempt + 1,
                            str(exc),
                        )
                        raise StoreUnavailableError(
                            f"Failed after {max_retries + 1} attempts: {exc}"
                        ) from exc

                    current_delay = min(delay, max_delay)
                    if on_retry:
                        on_retry(attempt + 1, exc, current_delay)
                    logger.debug(
                        "Retrying %s (attempt %s) in %.3fs",
                        func.__name__,
                        attempt + 1,
                        current_delay,
                    )
                    time.sleep(current_delay)
                    delay *= exponential_base

        return wrapper

    return decorator
