"""Daily scrape scheduler.

One daemon thread sleeps until the next ``run_at`` wall-clock time in the
configured zone (06:00 America/Chicago by default), runs the scrape job,
and goes back to sleep.  ``run_manual_scrape`` runs the same job on the
caller's thread.

A job is: scrape (with details) -> persist every bill through the
repository -> record the run in the JSONL run log.  Attempts that return no
live bills are retried with exponential backoff, up to ``max_retries``.
Only one job runs at a time; an overlapping trigger is skipped.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from datetime import time as dt_time
from pathlib import Path
from zoneinfo import ZoneInfo

from .config import (
    DETAIL_LIMIT,
    MAX_RETRIES,
    SCHEDULE_TIME,
    SCHEDULE_TIMEZONE,
    SCHEDULER_BASE_RETRY_DELAY,
)
from .errors import ScrapingError
from .models import BillRecord, utc_now_iso
from .pipeline import BillPipeline
from .retry import calculate_retry_delay
from .run_log import RunLogger
from .storage import BillRepository

LOGGER = logging.getLogger(__name__)


@dataclass
class SaveSummary:
    saved: int = 0
    updated: int = 0
    skipped: int = 0
    error_details: list[dict] = field(default_factory=list)  # [{billNumber, error}]

    @property
    def errors(self) -> int:
        return len(self.error_details)


@dataclass
class ScrapeRunResult:
    success: bool
    message: str
    bills_processed: int = 0
    bills_saved: int = 0
    bills_updated: int = 0
    errors: list[dict] = field(default_factory=list)
    attempt: int = 0
    error: str | None = None
    timestamp: str = field(default_factory=utc_now_iso)
    used_fallback: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def parse_run_at(run_at: str) -> tuple[int, int]:
    """``"06:00"`` -> ``(6, 0)``.  Raises ``ValueError`` for anything else."""
    try:
        hour_s, minute_s = run_at.strip().split(":")
        hour, minute = int(hour_s), int(minute_s)
    except ValueError as exc:
        raise ValueError(f"run_at must look like HH:MM, got {run_at!r}") from exc
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"run_at out of range: {run_at!r}")
    return hour, minute


class ScrapingScheduler:
    """Runs the scrape job daily on a background thread, or on demand."""

    def __init__(
        self,
        pipeline: BillPipeline,
        repository: BillRepository,
        *,
        run_at: str = SCHEDULE_TIME,
        timezone: str = SCHEDULE_TIMEZONE,
        max_retries: int = MAX_RETRIES,
        base_retry_delay: float = SCHEDULER_BASE_RETRY_DELAY,
        run_log_path: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
        with_details: bool = True,
        detail_limit: int = DETAIL_LIMIT,
    ):
        self.pipeline = pipeline
        self.repository = repository
        self.run_at = run_at
        self._hour, self._minute = parse_run_at(run_at)
        self.tz = ZoneInfo(timezone)
        self.max_retries = max(1, max_retries)
        self.base_retry_delay = base_retry_delay
        self.run_log_path = run_log_path
        self.with_details = with_details
        self.detail_limit = detail_limit
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(self.tz))

        self._job_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        self.last_run: str | None = None
        self.next_run: datetime | None = None
        self.retry_attempts = 0
        self.last_result: ScrapeRunResult | None = None

    # ── schedule ─────────────────────────────────────────────────────────

    def next_run_time(self, now: datetime | None = None) -> datetime:
        """Next occurrence of ``run_at`` in the scheduler's zone, strictly after *now*."""
        now = (now or self._clock()).astimezone(self.tz)
        run_time = dt_time(self._hour, self._minute)
        candidate = datetime.combine(now.date(), run_time, tzinfo=self.tz)
        if candidate <= now:
            candidate = datetime.combine(now.date() + timedelta(days=1), run_time, tzinfo=self.tz)
        return candidate

    @property
    def is_scheduled(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_running(self) -> bool:
        return self._job_lock.locked()

    def start(self) -> None:
        """Start the background thread.  Calling it again while running is a no-op."""
        if self.is_scheduled:
            LOGGER.info("Scraping scheduler already started")
            return
        self._stop_event.clear()
        self.next_run = self.next_run_time()
        self._thread = threading.Thread(
            target=self._run_loop, name="tx-scrape-scheduler", daemon=True
        )
        self._thread.start()
        LOGGER.info("Scraping scheduler started. Next run: %s", self.next_run.isoformat())

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        self.next_run = None
        LOGGER.info("Scraping scheduler stopped")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.next_run = self.next_run_time()
            wait_s = max(0.0, (self.next_run - self._clock()).total_seconds())
            if self._stop_event.wait(wait_s):
                break
            self.run_scraping_job(trigger="scheduled")

    # ── job ──────────────────────────────────────────────────────────────

    def run_manual_scrape(self) -> ScrapeRunResult:
        LOGGER.info("Manual scraping triggered")
        return self.run_scraping_job(trigger="manual")

    def run_scraping_job(self, trigger: str = "scheduled") -> ScrapeRunResult:
        """Scrape and persist with retries.  Never raises."""
        if not self._job_lock.acquire(blocking=False):
            LOGGER.warning("Scraping job already running, skipping this execution")
            return ScrapeRunResult(success=False, message="Job already running")

        try:
            self.last_run = utc_now_iso()
            self.retry_attempts = 0
            LOGGER.info("Starting scraping job (%s)", trigger)

            with RunLogger("scrape", log_path=self.run_log_path, meta={"trigger": trigger}) as log:
                result = self._execute_with_retry(log)
                log.meta.update(
                    {
                        "bills_processed": result.bills_processed,
                        "bills_saved": result.bills_saved,
                        "bills_updated": result.bills_updated,
                        "save_errors": len(result.errors),
                        "attempt": result.attempt,
                        "used_fallback": result.used_fallback,
                    }
                )
                if not result.success:
                    log.fail(result.error or result.message)

            self.last_result = result
            return result
        finally:
            self._job_lock.release()
            if self.is_scheduled:
                self.next_run = self.next_run_time()

    def _scrape(self) -> list[BillRecord]:
        if self.with_details:
            return self.pipeline.scrape_bills_with_details(limit=self.detail_limit or None)
        return self.pipeline.scrape_bills()

    def _execute_with_retry(self, log: RunLogger) -> ScrapeRunResult:
        last_error: Exception | None = None
        used_fallback = False

        while self.retry_attempts < self.max_retries:
            self.retry_attempts += 1
            attempt = self.retry_attempts
            LOGGER.info("Scraping attempt %d/%d", attempt, self.max_retries)
            try:
                with log.phase_ctx("Scrape", detail=f"attempt {attempt}") as phase:
                    bills = self._scrape()
                    phase["detail"] = f"attempt {attempt}: {len(bills)} bills"

                used_fallback = self.pipeline.last_run_used_fallback
                if used_fallback:
                    raise ScrapingError(
                        f"Live scrape failed, only fallback data available: {self.pipeline.last_error}"
                    )
                if not bills:
                    raise ScrapingError("No bills scraped - possible website structure change")

                with log.phase_ctx("Persist") as phase:
                    summary = self.save_bills(bills)
                    phase["detail"] = (
                        f"{summary.saved} new, {summary.updated} updated, {summary.errors} errors"
                    )

                LOGGER.info("Scraping completed successfully. Processed %d bills", len(bills))
                return ScrapeRunResult(
                    success=True,
                    message=f"Processed {len(bills)} bills",
                    bills_processed=len(bills),
                    bills_saved=summary.saved,
                    bills_updated=summary.updated,
                    errors=summary.error_details,
                    attempt=attempt,
                )
            except Exception as exc:
                last_error = exc
                LOGGER.error("Scraping attempt %d failed: %s", attempt, exc)
                if attempt >= self.max_retries:
                    break
                delay = calculate_retry_delay(attempt, self.base_retry_delay)
                LOGGER.info("Retrying in %.1f seconds ...", delay)
                self._sleep(delay)

        LOGGER.error("Scraping job failed after all retries: %s", last_error)
        return ScrapeRunResult(
            success=False,
            message="Scraping failed after all retries",
            attempt=self.retry_attempts,
            error=str(last_error) if last_error else None,
            used_fallback=used_fallback,
        )

    def save_bills(self, bills: list[BillRecord]) -> SaveSummary:
        """Upsert each bill; one bill's failure does not stop the rest."""
        summary = SaveSummary()
        LOGGER.info("Saving %d bills to storage", len(bills))
        for bill in bills:
            if bill.is_placeholder or bill.is_stale:
                summary.skipped += 1
                continue
            try:
                outcome = self.repository.save_bill(bill)
            except Exception as exc:
                LOGGER.error("Failed to save bill %s: %s", bill.id, exc)
                summary.error_details.append({"billNumber": bill.id, "error": str(exc)})
                continue
            if outcome == "created":
                summary.saved += 1
            else:
                summary.updated += 1

        if summary.error_details:
            LOGGER.warning("%d bills failed to save", summary.errors)
        LOGGER.info(
            "Storage save completed. Saved: %d, Updated: %d, Errors: %d",
            summary.saved,
            summary.updated,
            summary.errors,
        )
        return summary

    # ── status ───────────────────────────────────────────────────────────

    def get_status(self) -> dict:
        return {
            "is_running": self.is_running,
            "is_scheduled": self.is_scheduled,
            "last_run": self.last_run,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "retry_attempts": self.retry_attempts,
            "max_retries": self.max_retries,
            "run_at": self.run_at,
            "timezone": self.tz.key,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "circuit_breaker": self.pipeline.breaker.snapshot(),
        }
