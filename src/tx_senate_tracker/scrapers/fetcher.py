"""Document fetcher for Texas Legislature Online.

TLO addresses everything by session code and bill number:

- the Senate-filed report: ``/Reports/Report.aspx?LegSess=89R&ID=senatefiled``
- per-bill pages: ``/BillLookup/{Page}.aspx?LegSess=89R&Bill=SB1``
- full text: ``/tlodocs/89R/billtext/html/SB00001F.htm`` (and ``pdf/...F.pdf``)

A bill's documents may only exist under an older session, and not every text
version exists for every bill, so per-bill fetches walk a priority-ordered
list of candidate URLs and stop at the first plausible response.  Candidates
are produced lazily by :meth:`DocumentFetcher.iter_candidates`.

Network-level failures are raised as typed errors for the retry controller.
A candidate that is missing (4xx) or implausible (soft 404) is skipped; an
exhausted candidate list returns ``None``.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import (
    BASE_URL,
    LIST_TIMEOUT,
    REQUEST_DELAY,
    REQUEST_TIMEOUT,
    USER_AGENT,
    get_sessions,
)
from ..errors import NetworkError, RequestTimeoutError, ScrapingError
from ..identifiers import standardize, to_document_number

LOGGER = logging.getLogger(__name__)

# Bodies shorter than this are error stubs, not bill pages.
MIN_PAGE_LENGTH = 500
MIN_REPORT_LENGTH = 1000
MIN_PDF_BYTES = 1000
# Omnibus appropriation PDFs beyond this are slow to fetch and parse.
MAX_PDF_BYTES = 10 * 1024 * 1024  # 10 MB

NOT_FOUND_MARKERS: tuple[str, ...] = (
    "bill not found",
    "no bill found",
    "does not exist",
    "cannot be found",
    "page not found",
)


class DocKind(str, enum.Enum):
    """Per-bill documents the fetcher knows how to address."""

    HISTORY = "History"
    CAPTIONS = "Captions"
    SUMMARY = "BillSummary"
    STAGES = "BillStages"
    TEXT_HTML = "text_html"
    TEXT_PDF = "text_pdf"

    @property
    def is_text(self) -> bool:
        return self in (DocKind.TEXT_HTML, DocKind.TEXT_PDF)


# Priority order within a session: Filed, Introduced, Engrossed, Signed.
TEXT_VERSIONS: tuple[str, ...] = ("F", "I", "E", "S")


@dataclass(frozen=True)
class Candidate:
    url: str
    session: str
    kind: DocKind
    version: str = ""


@dataclass
class FetchedDocument:
    url: str
    session: str
    kind: DocKind
    version: str
    content: str | bytes

    @property
    def is_pdf(self) -> bool:
        return isinstance(self.content, bytes)


# ── Session builder ──────────────────────────────────────────────────────────


def build_session(user_agent: str = USER_AGENT, status_retries: int = 2) -> requests.Session:
    """Session with pooled connections and transport retries on 429/5xx.

    Connection and read errors are not retried here; they surface as
    :class:`NetworkError` so the retry controller can apply its own backoff.
    """
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent})
    retry = Retry(
        total=status_retries,
        connect=0,
        read=0,
        backoff_factor=1.0,
        status_forcelist=[429, 500, 502, 503, 504],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=2, pool_maxsize=2)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def looks_like_not_found(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in NOT_FOUND_MARKERS)


# ── Fetcher ──────────────────────────────────────────────────────────────────


class DocumentFetcher:
    """HTTP access to TLO with session/version fallback and a politeness throttle."""

    def __init__(
        self,
        base_url: str = BASE_URL,
        sessions: list[str] | None = None,
        *,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
        list_timeout: float = LIST_TIMEOUT,
        request_delay: float = REQUEST_DELAY,
        user_agent: str = USER_AGENT,
        min_page_length: int = MIN_PAGE_LENGTH,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.sessions = list(sessions) if sessions else get_sessions()
        self.timeout = timeout
        self.list_timeout = list_timeout
        self.request_delay = request_delay
        self.min_page_length = min_page_length
        self._http = session or build_session(user_agent)
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request_time = 0.0

    @property
    def current_session(self) -> str:
        return self.sessions[0]

    # ── URL builders ──────────────────────────────────────────────────────

    def report_url(self, session_code: str | None = None) -> str:
        code = session_code or self.current_session
        return f"{self.base_url}Reports/Report.aspx?LegSess={code}&ID=senatefiled"

    def page_url(self, kind: DocKind, session_code: str, bill_id: str) -> str:
        return f"{self.base_url}BillLookup/{kind.value}.aspx?LegSess={session_code}&Bill={bill_id}"

    def text_url(self, kind: DocKind, session_code: str, bill_id: str, version: str) -> str:
        doc_num = to_document_number(bill_id)
        if kind is DocKind.TEXT_PDF:
            return f"{self.base_url}tlodocs/{session_code}/billtext/pdf/{doc_num}{version}.pdf"
        return f"{self.base_url}tlodocs/{session_code}/billtext/html/{doc_num}{version}.htm"

    def history_url(self, bill_id: str, session_code: str | None = None) -> str:
        return self.page_url(DocKind.HISTORY, session_code or self.current_session, bill_id)

    def iter_candidates(self, bill_id: str, kind: DocKind) -> Iterator[Candidate]:
        """Yield candidate URLs in priority order: newest session first, then versions."""
        for session_code in self.sessions:
            if kind.is_text:
                for version in TEXT_VERSIONS:
                    yield Candidate(
                        url=self.text_url(kind, session_code, bill_id, version),
                        session=session_code,
                        kind=kind,
                        version=version,
                    )
            else:
                yield Candidate(
                    url=self.page_url(kind, session_code, bill_id),
                    session=session_code,
                    kind=kind,
                )

    # ── throttled HTTP ────────────────────────────────────────────────────

    def _get(self, url: str, timeout: float, **kwargs: object) -> requests.Response:
        """GET with a per-instance rate limit, translating transport errors."""
        with self._lock:
            elapsed = time.monotonic() - self._last_request_time
            wait = max(0.0, self.request_delay - elapsed)
            # Reserve our slot by advancing the timestamp before releasing the lock.
            self._last_request_time = time.monotonic() + wait
        if wait > 0:
            self._sleep(wait)

        try:
            return self._http.get(url, timeout=timeout, **kwargs)
        except requests.Timeout as exc:
            raise RequestTimeoutError(
                f"Timed out after {timeout}s fetching {url}", context={"url": url}
            ) from exc
        except requests.ConnectionError as exc:
            raise NetworkError(
                f"Cannot connect to Texas Legislature website: {exc}", context={"url": url}
            ) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Network error: {exc}", context={"url": url}) from exc

    @staticmethod
    def _raise_for_server_error(resp: requests.Response, url: str) -> None:
        if resp.status_code >= 500:
            raise NetworkError(
                f"Server error {resp.status_code} from {url}",
                context={"url": url, "status": resp.status_code},
            )

    # ── public API ───────────────────────────────────────────────────────

    def fetch_bill_list(self, session_code: str | None = None) -> str:
        """Fetch the Senate-filed bills report HTML.

        Raises :class:`ScrapingError` for a missing or implausibly short page.
        """
        url = self.report_url(session_code)
        LOGGER.info("Fetching Senate bill report %s ...", url)
        resp = self._get(url, self.list_timeout)
        self._raise_for_server_error(resp, url)
        if resp.status_code != 200:
            raise ScrapingError(
                f"Senate report returned HTTP {resp.status_code}",
                context={"url": url, "status": resp.status_code},
            )
        body = resp.text or ""
        if len(body) < MIN_REPORT_LENGTH:
            raise ScrapingError(
                "Invalid or empty response from Senate reports page",
                context={"url": url, "length": len(body)},
            )
        return body

    def is_plausible(self, content: str | bytes, kind: DocKind) -> bool:
        """Reject soft-404 pages and stubs before anything is extracted from them."""
        if kind is DocKind.TEXT_PDF:
            return (
                isinstance(content, bytes)
                and content.startswith(b"%PDF")
                and MIN_PDF_BYTES <= len(content) <= MAX_PDF_BYTES
            )
        if not isinstance(content, str) or len(content) < self.min_page_length:
            return False
        return not looks_like_not_found(content)

    def _fetch_candidate(self, candidate: Candidate) -> str | bytes | None:
        is_pdf = candidate.kind is DocKind.TEXT_PDF
        resp = self._get(candidate.url, self.timeout, stream=is_pdf)
        try:
            self._raise_for_server_error(resp, candidate.url)
            if resp.status_code != 200:
                return None
            if is_pdf:
                content_length = resp.headers.get("Content-Length")
                if content_length and content_length.isdigit() and int(content_length) > MAX_PDF_BYTES:
                    LOGGER.warning(
                        "PDF too large (%s bytes), skipping: %s", content_length, candidate.url
                    )
                    return None
                return resp.content
            return resp.text
        finally:
            resp.close()

    def fetch_bill_document(self, bill_id: str, kind: DocKind) -> FetchedDocument | None:
        """Fetch one per-bill document, trying sessions (and text versions) in order.

        Returns ``None`` when every candidate was missing or implausible.
        Raises :class:`NetworkError` / :class:`RequestTimeoutError` on
        transport failures.
        """
        canonical = standardize(bill_id)
        if canonical is None:
            return None

        for candidate in self.iter_candidates(canonical, kind):
            content = self._fetch_candidate(candidate)
            if content is None:
                LOGGER.debug("Miss: %s", candidate.url)
                continue
            if not self.is_plausible(content, kind):
                LOGGER.debug("Implausible response, skipping: %s", candidate.url)
                continue
            LOGGER.debug("Hit: %s", candidate.url)
            return FetchedDocument(
                url=candidate.url,
                session=candidate.session,
                kind=kind,
                version=candidate.version,
                content=content,
            )

        LOGGER.info("No %s document found for %s in sessions %s", kind.value, canonical, self.sessions)
        return None
