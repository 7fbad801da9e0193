"""Circuit breaker guarding calls to Texas Legislature Online.

Three states:
  CLOSED    -- normal operation, calls flow through
  OPEN      -- the site is failing; calls fail fast without touching the network
  HALF_OPEN -- cool-down elapsed; the next call is a trial call

Transitions:
  CLOSED -> OPEN       after ``failure_threshold`` consecutive failures
  OPEN -> HALF_OPEN    once ``recovery_timeout`` seconds pass since the last failure
  HALF_OPEN -> CLOSED  trial call succeeds
  HALF_OPEN -> OPEN    trial call fails (cool-down restarts)

The breaker wraps the whole retry loop in the pipeline: retries happen inside
one breaker call, so a failure is only counted once every retry is spent.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from typing import TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised instead of making a call while the breaker is OPEN."""

    retryable = False

    def __init__(self, source_name: str):
        self.source_name = source_name
        super().__init__(
            f"Circuit breaker OPEN for '{source_name}': source is failing, not calling it"
        )


class CircuitBreaker:
    """Consecutive-failure breaker with an injectable monotonic clock."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] | None = None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock or time.monotonic

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._opened_count = 0

    @property
    def state(self) -> CircuitState:
        """Current state; an expired OPEN becomes HALF_OPEN on read."""
        if (
            self._state == CircuitState.OPEN
            and (self._clock() - self._last_failure_time) >= self.recovery_timeout
        ):
            self._state = CircuitState.HALF_OPEN
            LOGGER.info(
                "%s: circuit OPEN -> HALF_OPEN after %.1fs cool-down",
                self.name,
                self._clock() - self._last_failure_time,
            )
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def is_call_permitted(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.CLOSED
            LOGGER.info("%s: circuit HALF_OPEN -> CLOSED (trial call succeeded)", self.name)

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._opened_count += 1
            LOGGER.warning("%s: circuit HALF_OPEN -> OPEN (trial call failed)", self.name)
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_count += 1
            LOGGER.warning(
                "%s: circuit CLOSED -> OPEN (%d consecutive failures, threshold %d)",
                self.name,
                self._failure_count,
                self.failure_threshold,
            )

    def call(self, operation: Callable[[], T]) -> T:
        """Run *operation* through the breaker.

        Raises :class:`CircuitOpenError` without calling it while OPEN.  Any
        exception from the operation counts as a failure and is re-raised.
        """
        if not self.is_call_permitted:
            raise CircuitOpenError(self.name)
        try:
            result = operation()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        LOGGER.info("%s: circuit manually reset to CLOSED", self.name)

    def snapshot(self) -> dict:
        """Status dict for the scheduler status endpoint."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
            "times_opened": self._opened_count,
        }
