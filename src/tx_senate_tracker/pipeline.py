"""Scrape-and-normalize pipeline: TLO pages in, validated ``BillRecord`` out.

Flow for one run::

    fetch_bill_list -> parse_bill_list -> build_record -> validate_record
                                        \\-> (optional) scrape_bill_details

The list scrape runs inside the circuit breaker and the retry controller.
A run that still fails falls back to the last good bill list (tagged stale),
or to a single placeholder bill when nothing is cached, so
:meth:`BillPipeline.scrape_bills` never raises.

Detail enrichment is sequential with a politeness delay between bills and
is retried per bill outside the breaker.  A bill whose detail pages fail
keeps its list-only record.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .circuit_breaker import CircuitBreaker
from .config import (
    BREAKER_FAILURE_THRESHOLD,
    BREAKER_RECOVERY_TIMEOUT,
    FETCH_BILL_TEXT,
    MAX_RETRIES,
    REQUEST_DELAY,
    RETRY_BASE_DELAY,
)
from .errors import ScrapingError, TrackerError, ValidationError
from .fallback import FallbackCache, generate_placeholder_bills
from .identifiers import standardize, to_display_format
from .models import BillRecord, BillStatus, Sponsor, Stage
from .retry import RetryController
from .scrapers.extract import (
    BillHistory,
    PartialBill,
    extract_caption_text,
    extract_history,
    extract_short_title,
    extract_stage_history,
    extract_topics,
    parse_bill_list,
)
from .scrapers.fetcher import DocKind, DocumentFetcher
from .scrapers.full_text import fetch_bill_text
from .status import infer_status, infer_status_from_stages

LOGGER = logging.getLogger(__name__)

LIST_OPERATION_KEY = "scrape-bills"
FALLBACK_KEY = "bills-list"

_RE_SENATE_BILL_ID = re.compile(r"^SB\d+$")


@dataclass
class BillDetails:
    """Everything the per-bill pages added on top of the report row."""

    bill_id: str
    session: str = ""
    official_url: str = ""
    history: BillHistory | None = None
    caption: str = ""
    stages: list[Stage] = field(default_factory=list)
    bill_text: str = ""
    text_url: str = ""


def _dedupe(names: list[str], exclude: set[str] | None = None) -> list[str]:
    seen = set(exclude or ())
    out = []
    for name in names:
        if name and name not in seen:
            seen.add(name)
            out.append(name)
    return out


class BillPipeline:
    """Orchestrates fetcher, extractor, retry, breaker and fallback for one tracker."""

    def __init__(
        self,
        fetcher: DocumentFetcher,
        *,
        retry: RetryController | None = None,
        breaker: CircuitBreaker | None = None,
        fallback: FallbackCache | None = None,
        detail_delay: float = REQUEST_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        fetch_text: bool = FETCH_BILL_TEXT,
    ):
        self.fetcher = fetcher
        self.retry = retry or RetryController(sleep=sleep)
        self.breaker = breaker or CircuitBreaker(
            "tlo",
            failure_threshold=BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=BREAKER_RECOVERY_TIMEOUT,
        )
        self.fallback = fallback or FallbackCache()
        self.detail_delay = detail_delay
        self.fetch_text = fetch_text
        self._sleep = sleep

        self.last_run_used_fallback = False
        self.last_error: str | None = None
        self.last_detail_errors: list[str] = []
        self._partials: dict[str, PartialBill] = {}

    # ── Record assembly ───────────────────────────────────────────────────

    def build_record(self, partial: PartialBill, details: BillDetails | None = None) -> BillRecord:
        """Merge a report row with optional detail-page data into one record."""
        history = details.history if details and details.history else BillHistory()
        stages = list(details.stages) if details else []

        caption = (details.caption if details else "") or history.caption or partial.caption
        full_title = caption or f"{to_display_format(partial.bill_id)} - Title not available"
        short_title = extract_short_title(caption) or full_title

        authors = _dedupe(partial.authors or history.authors)
        co_sponsors = _dedupe(
            partial.co_authors + history.co_authors + partial.sponsors + history.sponsors
            + history.co_sponsors,
            exclude=set(authors),
        )

        last_action = history.last_action or partial.last_action
        if stages:
            status = infer_status_from_stages(stages)
        else:
            status = infer_status(last_action)

        filed_date = partial.filed_date or history.filed_date
        if not filed_date:
            filed_date = next(
                (s.date for s in stages if s.status is BillStatus.FILED and s.date), ""
            )
        last_action_date = (
            history.last_action_date or partial.last_action_date or filed_date
        )

        session = (details.session if details else "") or self.fetcher.current_session
        official_url = (details.official_url if details else "") or self.fetcher.history_url(
            partial.bill_id, session
        )

        return BillRecord(
            id=partial.bill_id,
            short_title=short_title,
            full_title=full_title,
            status=status,
            abstract=caption or full_title,
            sponsors=[Sponsor(name=name) for name in authors],
            co_sponsors=co_sponsors,
            committee=history.committee or partial.committee,
            stages=stages,
            last_action=last_action,
            filed_date=filed_date,
            last_action_date=last_action_date,
            official_url=official_url,
            session=session,
            bill_text=details.bill_text if details else "",
            topics=extract_topics(caption or full_title),
        )

    @staticmethod
    def validate_record(record: BillRecord) -> None:
        """Raise :class:`ValidationError` for a record that must not be stored."""
        if not record.id or not isinstance(record.id, str):
            raise ValidationError("Missing required field: id")
        if standardize(record.id) != record.id or not _RE_SENATE_BILL_ID.match(record.id):
            raise ValidationError(
                f"Invalid bill number format: {record.id!r}", context={"id": record.id}
            )
        if not record.full_title or not record.full_title.strip():
            raise ValidationError(f"{record.id}: missing required field fullTitle")
        if not record.short_title or not record.short_title.strip():
            raise ValidationError(f"{record.id}: missing required field shortTitle")
        if not isinstance(record.status, BillStatus):
            raise ValidationError(f"{record.id}: invalid status {record.status!r}")

    # ── List scrape ───────────────────────────────────────────────────────

    def _fetch_and_parse(self) -> list[BillRecord]:
        LOGGER.info("Starting to scrape Texas Senate bills from reports ...")
        html = self.fetcher.fetch_bill_list()
        partials = parse_bill_list(html)

        records: list[BillRecord] = []
        self._partials = {}
        for partial in partials:
            record = self.build_record(partial)
            try:
                self.validate_record(record)
            except ValidationError as exc:
                LOGGER.warning("Skipping %s: %s", partial.bill_id, exc)
                continue
            self._partials[record.id] = partial
            records.append(record)

        if not records:
            raise ScrapingError("No Senate bills found in the report")
        LOGGER.info("Successfully scraped %d Senate bills from report", len(records))
        return records

    def scrape_bills(self) -> list[BillRecord]:
        """All Senate bills from the report; fallback data when scraping fails.

        Never raises.  ``last_run_used_fallback`` tells the caller whether the
        returned list is live data.
        """
        self.last_run_used_fallback = False
        self.last_error = None
        try:
            bills = self.breaker.call(
                lambda: self.retry.execute_with_retry(
                    self._fetch_and_parse,
                    LIST_OPERATION_KEY,
                    max_retries=MAX_RETRIES,
                    base_delay=RETRY_BASE_DELAY,
                )
            )
        except Exception as exc:
            LOGGER.error("Scraping failed after all retries: %s", exc)
            self.last_error = str(exc)
            self.last_run_used_fallback = True
            stale = self.fallback.get_stale_bills(FALLBACK_KEY)
            if stale:
                LOGGER.info("Returning %d cached fallback bills", len(stale))
                return stale
            LOGGER.info("Generating placeholder fallback bills")
            return generate_placeholder_bills()

        self.fallback.set(FALLBACK_KEY, bills)
        return bills

    # ── Detail scrape ─────────────────────────────────────────────────────

    def _fetch_details(self, bill_id: str) -> BillDetails:
        details = BillDetails(bill_id=bill_id)

        doc = self.fetcher.fetch_bill_document(bill_id, DocKind.HISTORY)
        if doc is not None:
            details.session = doc.session
            details.official_url = doc.url
            details.history = extract_history(doc.content)

        doc = self.fetcher.fetch_bill_document(bill_id, DocKind.STAGES)
        if doc is not None:
            details.stages = extract_stage_history(doc.content)
            details.session = details.session or doc.session

        if not (details.history and details.history.caption):
            for kind in (DocKind.CAPTIONS, DocKind.SUMMARY):
                doc = self.fetcher.fetch_bill_document(bill_id, kind)
                if doc is None:
                    continue
                caption = extract_caption_text(doc.content)
                if caption:
                    details.caption = caption
                    break

        if self.fetch_text:
            text, text_doc = fetch_bill_text(self.fetcher, bill_id)
            details.bill_text = text
            details.text_url = text_doc.url if text_doc else ""

        return details

    def scrape_bill_details(self, bill_id: str) -> BillDetails:
        """History, stages, caption and (optionally) full text for one bill.

        Raises :class:`ValidationError` for an unparsable id, and whatever
        the fetch raised once retries are spent.  Retried but not
        breaker-guarded: one bill's failures never trip the list breaker.
        """
        canonical = standardize(bill_id)
        if canonical is None:
            raise ValidationError(f"Invalid bill id: {bill_id!r}")
        return self.retry.execute_with_retry(
            lambda: self._fetch_details(canonical),
            f"bill-details:{canonical}",
        )

    def scrape_bills_with_details(self, limit: int | None = None) -> list[BillRecord]:
        """List scrape plus per-bill enrichment for the first *limit* bills.

        Fallback data is returned as-is without enrichment.
        """
        bills = self.scrape_bills()
        if self.last_run_used_fallback:
            return bills
        if limit:
            bills = bills[:limit]

        self.last_detail_errors = []
        enriched: list[BillRecord] = []
        for i, bill in enumerate(bills):
            if i:
                self._sleep(self.detail_delay)
            try:
                details = self.scrape_bill_details(bill.id)
            except TrackerError as exc:
                LOGGER.warning("Details for %s failed, keeping list data: %s", bill.id, exc)
                self.last_detail_errors.append(f"{bill.id}: {exc}")
                enriched.append(bill)
                continue

            partial = self._partials.get(bill.id) or PartialBill(bill_id=bill.id)
            record = self.build_record(partial, details)
            try:
                self.validate_record(record)
            except ValidationError as exc:
                LOGGER.warning("Enriched %s failed validation, keeping list data: %s", bill.id, exc)
                self.last_detail_errors.append(f"{bill.id}: {exc}")
                record = bill
            enriched.append(record)

            if (i + 1) % 25 == 0:
                LOGGER.info("Enriched %d/%d bills ...", i + 1, len(bills))

        return enriched
