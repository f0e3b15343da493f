"""Retry-with-backoff helper shared by provider calls and store reads."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    is_retryable: Callable[[Exception], bool],
    max_attempts: int = 3,
    base_delay: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> T:
    """Call fn until it succeeds, retrying only errors accepted by is_retryable.

    The wait before retry number n (0-based) is base_delay * 2**n, so with the
    defaults a call that keeps failing waits 2s then 4s before the final error
    is re-raised. Non-retryable errors propagate immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return fn()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= max_attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            LOGGER.warning(
                "%s failed on attempt %s/%s, retrying in %.1fs: %s",
                label,
                attempt + 1,
                max_attempts,
                delay,
                exc,
            )
            sleep(delay)

    raise AssertionError("unreachable")
