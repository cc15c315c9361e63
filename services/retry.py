"""
Bounded retry for operations that lose a race inside the store.

Only StoreConflict is retried; every other error (including the logical
rejections of the lock state machine) propagates on the first attempt.

Retry strategy:
- Exponential backoff: base, 2*base, 4*base, ... between attempts
- Up to `attempts` calls in total (default from STORE_RETRY_ATTEMPTS)
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from config import get_settings
from domain.errors import StoreConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_with_retry(
    operation: Callable[[], T],
    *,
    attempts: Optional[int] = None,
    backoff_base: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "store operation",
) -> T:
    """
    Run operation, retrying on StoreConflict.

    Raises:
        StoreConflict: when every attempt lost its race
    """

    settings = get_settings()
    max_attempts = attempts if attempts is not None else settings.store_retry_attempts
    base = backoff_base if backoff_base is not None else settings.store_retry_backoff_seconds
    if max_attempts < 1:
        raise ValueError("attempts must be >= 1")

    attempt = 0
    while True:
        try:
            return operation()
        except StoreConflict:
            attempt += 1
            if attempt >= max_attempts:
                logger.error("%s failed after %d attempts", description, attempt)
                raise
            backoff = base * (2 ** (attempt - 1))
            logger.warning(
                "%s hit a store conflict (attempt %d/%d); retrying in %.3fs",
                description,
                attempt,
                max_attempts,
                backoff,
            )
            sleep(backoff)


__all__ = ["run_with_retry"]
