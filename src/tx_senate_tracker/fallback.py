"""Last-known-good data for when scraping fails.

A successful bill-list scrape is remembered under a key for ``ttl_seconds``
(24h by default).  When a later scrape fails, readers get those bills back
tagged ``is_stale`` so the UI can say so.  With nothing cached, a single
synthetic placeholder bill keeps downstream consumers from seeing an empty
list.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections.abc import Callable

from .config import FALLBACK_TTL
from .models import BillRecord, BillStatus, Sponsor, utc_now_iso

LOGGER = logging.getLogger(__name__)

STALE_MESSAGE = "This data may be outdated due to scraping service issues"
PLACEHOLDER_ID = "SB0"


def generate_placeholder_bills() -> list[BillRecord]:
    """The synthetic dataset served when there is no cached data at all."""
    now = utc_now_iso()
    return [
        BillRecord(
            id=PLACEHOLDER_ID,
            short_title="Sample Bill - Service Temporarily Unavailable",
            full_title=(
                "A sample bill displayed while the bill tracking service is "
                "temporarily unavailable"
            ),
            status=BillStatus.FILED,
            abstract=(
                "This is a placeholder bill shown when the main service is unavailable. "
                "Please try refreshing the page in a few minutes."
            ),
            sponsors=[Sponsor(name="System")],
            official_url="#",
            bill_text="Bill text is temporarily unavailable due to service issues.",
            filed_date=now[:10],
            last_updated=now,
            topics=["System"],
            is_placeholder=True,
        )
    ]


class FallbackCache:
    """In-process TTL cache of bill lists, keyed by operation name."""

    def __init__(
        self,
        ttl_seconds: float = FALLBACK_TTL,
        clock: Callable[[], float] | None = None,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, list[BillRecord]]] = {}

    def set(self, key: str, bills: list[BillRecord]) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), copy.deepcopy(bills))

    def get(self, key: str) -> list[BillRecord] | None:
        """Cached bills for *key*, or ``None`` when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, bills = entry
            if self._clock() - stored_at > self.ttl_seconds:
                LOGGER.info("Fallback data for %r expired, dropping", key)
                del self._entries[key]
                return None
            return copy.deepcopy(bills)

    def get_stale_bills(self, key: str) -> list[BillRecord] | None:
        """Cached bills tagged as stale with a fresh ``last_updated``."""
        bills = self.get(key)
        if bills is None:
            return None
        now = utc_now_iso()
        for bill in bills:
            bill.is_stale = True
            bill.fallback_message = STALE_MESSAGE
            bill.last_updated = now
        return bills

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
