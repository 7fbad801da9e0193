"""Tests for backoff delays and the retry controller."""

from __future__ import annotations

import pytest
import requests

from tx_senate_tracker.errors import NetworkError, ScrapingError, ValidationError
from tx_senate_tracker.retry import RetryController, calculate_retry_delay, is_retryable


class Flaky:
    """Fails with *error* the first *failures* calls, then returns ``"ok"``."""

    def __init__(self, failures: int, error: Exception):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestCalculateRetryDelay:
    def test_first_attempt_is_base_plus_jitter(self) -> None:
        delay = calculate_retry_delay(1, base_delay=5.0)
        assert 5.0 <= delay <= 6.0

    def test_doubles(self) -> None:
        assert 10.0 <= calculate_retry_delay(2, base_delay=5.0) <= 11.0
        assert 20.0 <= calculate_retry_delay(3, base_delay=5.0) <= 21.0

    @pytest.mark.parametrize("attempt", [5, 10, 100, 10_000])
    def test_never_exceeds_cap(self, attempt: int) -> None:
        assert calculate_retry_delay(attempt) <= 60.0

    def test_custom_cap(self) -> None:
        assert calculate_retry_delay(8, base_delay=2.0, max_delay=30.0) <= 30.0


class TestIsRetryable:
    def test_tracker_errors(self) -> None:
        assert is_retryable(NetworkError("reset"))
        assert not is_retryable(ScrapingError("no bills"))
        assert not is_retryable(ValidationError("bad id"))

    def test_requests_errors(self) -> None:
        assert is_retryable(requests.ConnectionError())
        assert is_retryable(requests.Timeout())

    def test_socket_markers(self) -> None:
        assert is_retryable(OSError("read ECONNRESET"))
        assert not is_retryable(RuntimeError("boom"))


class TestRetryController:
    def test_recovers_from_transient_failures(self) -> None:
        sleeps: list[float] = []
        controller = RetryController(max_retries=3, base_delay=1.0, sleep=sleeps.append)
        op = Flaky(2, NetworkError("reset"))

        assert controller.execute_with_retry(op, "list") == "ok"
        assert op.calls == 3
        assert len(sleeps) == 2
        assert controller.get_retry_count("list") == 0

    def test_non_retryable_raises_immediately(self) -> None:
        sleeps: list[float] = []
        controller = RetryController(max_retries=3, sleep=sleeps.append)
        op = Flaky(5, ScrapingError("no bills"))

        with pytest.raises(ScrapingError):
            controller.execute_with_retry(op, "list")
        assert op.calls == 1
        assert sleeps == []
        assert controller.get_retry_count("list") == 1

    def test_exhausted_raises_last_error(self) -> None:
        sleeps: list[float] = []
        controller = RetryController(max_retries=3, base_delay=1.0, sleep=sleeps.append)
        op = Flaky(10, NetworkError("still down"))

        with pytest.raises(NetworkError, match="still down"):
            controller.execute_with_retry(op, "list")
        assert op.calls == 3
        assert len(sleeps) == 2
        assert controller.get_retry_count("list") == 3

    def test_per_call_overrides(self) -> None:
        controller = RetryController(max_retries=5, sleep=lambda s: None)
        op = Flaky(10, NetworkError("down"))
        with pytest.raises(NetworkError):
            controller.execute_with_retry(op, "x", max_retries=2)
        assert op.calls == 2

    def test_custom_retry_condition(self) -> None:
        controller = RetryController(max_retries=3, sleep=lambda s: None)
        op = Flaky(1, ScrapingError("transient layout glitch"))
        result = controller.execute_with_retry(op, "x", retry_condition=lambda exc: True)
        assert result == "ok"

    def test_keys_are_independent(self) -> None:
        controller = RetryController(max_retries=1, sleep=lambda s: None)
        with pytest.raises(NetworkError):
            controller.execute_with_retry(Flaky(1, NetworkError("down")), "a")
        assert controller.get_retry_count("a") == 1
        assert controller.get_retry_count("b") == 0
        controller.reset_retry_count("a")
        assert controller.get_retry_count("a") == 0
