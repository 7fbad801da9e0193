"""Exponential backoff with jitter for transient scraping failures.

Only failures that another attempt can fix are retried (see
:func:`is_retryable`); a page that parses to nothing will parse to nothing
again, so :class:`~tx_senate_tracker.errors.ScrapingError` is raised at once.

Per-key failure counts let the scheduler status show how many attempts the
last operation under that key burned.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from typing import TypeVar

import requests

from .config import MAX_RETRIES, RETRY_BASE_DELAY, RETRY_MAX_DELAY
from .errors import TrackerError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings that mark a transient socket failure in an otherwise untyped error.
_TRANSIENT_MARKERS: tuple[str, ...] = ("ECONNRESET", "ETIMEDOUT", "ECONNREFUSED")


def calculate_retry_delay(
    attempt: int,
    base_delay: float = 5.0,
    max_delay: float = 60.0,
    jitter: float = 1.0,
) -> float:
    """Seconds to wait before retry number *attempt* (1-based).

    ``min(base * 2**(attempt-1) + U(0, jitter), max_delay)``, so the delay
    roughly doubles and never exceeds *max_delay*::

        >>> calculate_retry_delay(10) <= 60.0
        True
    """
    attempt = max(1, attempt)
    # Cap the exponent before computing so very large attempts cannot overflow.
    exp_delay = base_delay * (2 ** min(attempt - 1, 32))
    return min(exp_delay + random.uniform(0, jitter), max_delay)


def is_retryable(error: BaseException) -> bool:
    """Whether *error* is transient: network failure, timeout, or connection reset."""
    if isinstance(error, TrackerError):
        return error.retryable
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True
    message = str(error)
    return any(marker in message for marker in _TRANSIENT_MARKERS)


class RetryController:
    """Run operations with bounded, jittered retries and per-key bookkeeping."""

    def __init__(
        self,
        *,
        max_retries: int = MAX_RETRIES,
        base_delay: float = RETRY_BASE_DELAY,
        max_delay: float = RETRY_MAX_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._lock = threading.Lock()
        self._retry_counts: dict[str, int] = {}

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        key: str,
        *,
        max_retries: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        retry_condition: Callable[[BaseException], bool] = is_retryable,
    ) -> T:
        """Call *operation* up to *max_retries* times.

        Non-retryable errors propagate immediately.  The last error propagates
        once attempts run out.  A success clears the count for *key*.
        """
        attempts = max(1, self.max_retries if max_retries is None else max_retries)
        base = self.base_delay if base_delay is None else base_delay
        cap = self.max_delay if max_delay is None else max_delay

        for attempt in range(1, attempts + 1):
            try:
                result = operation()
            except Exception as exc:
                self._increment(key)
                if not retry_condition(exc):
                    LOGGER.warning("%s: non-retryable failure: %s", key, exc)
                    raise
                if attempt >= attempts:
                    LOGGER.error("%s: giving up after %d attempts: %s", key, attempt, exc)
                    raise
                delay = calculate_retry_delay(attempt, base, cap)
                LOGGER.info(
                    "%s: attempt %d/%d failed (%s), retrying in %.1fs",
                    key,
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                self._sleep(delay)
            else:
                self.reset_retry_count(key)
                return result

        # Unreachable: the loop either returns or raises.
        raise RuntimeError(f"{key}: retry loop exited without a result")

    def _increment(self, key: str) -> None:
        with self._lock:
            self._retry_counts[key] = self._retry_counts.get(key, 0) + 1

    def get_retry_count(self, key: str) -> int:
        with self._lock:
            return self._retry_counts.get(key, 0)

    def reset_retry_count(self, key: str) -> None:
        with self._lock:
            self._retry_counts.pop(key, None)
