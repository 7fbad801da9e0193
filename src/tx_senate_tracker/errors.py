"""Error taxonomy for the scraping pipeline.

``retryable`` tells the retry controller whether another attempt can help:
network failures and timeouts may clear up on their own, while a page we
cannot parse or a record that fails validation will not.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for pipeline errors."""

    retryable: bool = False

    def __init__(self, message: str, *, context: dict | None = None):
        super().__init__(message)
        self.context = dict(context or {})


class NetworkError(TrackerError):
    """DNS failure, refused connection, reset, or a 5xx that survived adapter retries."""

    retryable = True


class RequestTimeoutError(NetworkError):
    """The HTTP call did not finish inside its timeout."""


class ScrapingError(TrackerError):
    """The page was empty, implausible, or yielded no bills.

    Usually means the source site changed its structure.
    """


class ValidationError(TrackerError, ValueError):
    """A single record has malformed field values and is skipped."""
