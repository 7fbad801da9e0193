"""Tests for the TLO document fetcher: URLs, candidate fallback, error mapping."""

from __future__ import annotations

import pytest
import requests

from tx_senate_tracker.errors import NetworkError, RequestTimeoutError, ScrapingError
from tx_senate_tracker.scrapers.fetcher import (
    MAX_PDF_BYTES,
    DocKind,
    DocumentFetcher,
    looks_like_not_found,
)

from conftest import (
    BASE_URL,
    REPORT_HTML,
    REPORT_URL,
    SB22_HISTORY_HTML,
    FakeResponse,
    FakeSession,
    make_fetcher,
    page_url,
)

PDF_BYTES = b"%PDF-1.4\n" + b"0" * 2000


class TestUrls:
    def test_report_url(self, fetcher: DocumentFetcher) -> None:
        assert fetcher.report_url() == REPORT_URL
        assert "LegSess=88R" in fetcher.report_url("88R")

    def test_page_and_history_urls(self, fetcher: DocumentFetcher) -> None:
        assert fetcher.page_url(DocKind.STAGES, "89R", "SB22") == page_url("BillStages", "SB22")
        assert fetcher.history_url("SB22") == page_url("History", "SB22")

    def test_text_urls_use_padded_document_number(self, fetcher: DocumentFetcher) -> None:
        assert fetcher.text_url(DocKind.TEXT_HTML, "89R", "SB22", "F") == (
            f"{BASE_URL}tlodocs/89R/billtext/html/SB00022F.htm"
        )
        assert fetcher.text_url(DocKind.TEXT_PDF, "89R", "SB22", "E") == (
            f"{BASE_URL}tlodocs/89R/billtext/pdf/SB00022E.pdf"
        )

    def test_current_session_is_first(self, fetcher: DocumentFetcher) -> None:
        assert fetcher.current_session == "89R"


class TestCandidates:
    def test_pages_walk_sessions_newest_first(self, fetcher: DocumentFetcher) -> None:
        sessions = [c.session for c in fetcher.iter_candidates("SB22", DocKind.HISTORY)]
        assert sessions == ["89R", "88R"]

    def test_text_walks_versions_within_each_session(self, fetcher: DocumentFetcher) -> None:
        order = [(c.session, c.version) for c in fetcher.iter_candidates("SB22", DocKind.TEXT_HTML)]
        assert order[:5] == [("89R", "F"), ("89R", "I"), ("89R", "E"), ("89R", "S"), ("88R", "F")]
        assert len(order) == 8


class TestFetchBillList:
    def test_returns_report_html(self, fetcher: DocumentFetcher) -> None:
        assert fetcher.fetch_bill_list() == REPORT_HTML

    def test_http_error_is_scraping_error(self) -> None:
        fetcher = make_fetcher(FakeSession({REPORT_URL: FakeResponse("gone", status_code=404)}))
        with pytest.raises(ScrapingError):
            fetcher.fetch_bill_list()

    def test_short_body_is_scraping_error(self) -> None:
        fetcher = make_fetcher(FakeSession({REPORT_URL: FakeResponse("<html></html>")}))
        with pytest.raises(ScrapingError, match="Invalid or empty response"):
            fetcher.fetch_bill_list()

    def test_server_error_is_network_error(self) -> None:
        fetcher = make_fetcher(FakeSession({REPORT_URL: FakeResponse("", status_code=503)}))
        with pytest.raises(NetworkError) as exc_info:
            fetcher.fetch_bill_list()
        assert exc_info.value.retryable is True

    def test_timeout_is_typed(self) -> None:
        fetcher = make_fetcher(FakeSession({REPORT_URL: requests.Timeout("read timed out")}))
        with pytest.raises(RequestTimeoutError):
            fetcher.fetch_bill_list()

    def test_connection_error_is_network_error(self) -> None:
        fetcher = make_fetcher(
            FakeSession({REPORT_URL: requests.ConnectionError("ECONNREFUSED")})
        )
        with pytest.raises(NetworkError, match="Cannot connect"):
            fetcher.fetch_bill_list()


class TestFetchBillDocument:
    def test_hit_in_current_session(self, fetcher: DocumentFetcher) -> None:
        doc = fetcher.fetch_bill_document("sb 22", DocKind.HISTORY)
        assert doc is not None
        assert doc.session == "89R"
        assert doc.url == page_url("History", "SB22")
        assert doc.content == SB22_HISTORY_HTML
        assert not doc.is_pdf

    def test_falls_back_to_older_session(self) -> None:
        session = FakeSession({page_url("History", "SB9", "88R"): FakeResponse(SB22_HISTORY_HTML)})
        doc = make_fetcher(session).fetch_bill_document("SB9", DocKind.HISTORY)
        assert doc is not None
        assert doc.session == "88R"
        assert session.calls == [page_url("History", "SB9", "89R"), page_url("History", "SB9", "88R")]

    def test_soft_not_found_page_skipped(self) -> None:
        soft_404 = "<html><body>" + "x" * 600 + " Bill not found in this session.</body></html>"
        session = FakeSession(
            {
                page_url("History", "SB9", "89R"): FakeResponse(soft_404),
                page_url("History", "SB9", "88R"): FakeResponse(SB22_HISTORY_HTML),
            }
        )
        doc = make_fetcher(session).fetch_bill_document("SB9", DocKind.HISTORY)
        assert doc is not None
        assert doc.session == "88R"

    def test_nothing_found(self, fetcher: DocumentFetcher) -> None:
        assert fetcher.fetch_bill_document("SB404", DocKind.HISTORY) is None

    def test_invalid_id(self, fetcher: DocumentFetcher) -> None:
        assert fetcher.fetch_bill_document("not a bill", DocKind.HISTORY) is None

    def test_server_error_propagates(self) -> None:
        session = FakeSession({page_url("History", "SB9"): FakeResponse("", status_code=500)})
        with pytest.raises(NetworkError):
            make_fetcher(session).fetch_bill_document("SB9", DocKind.HISTORY)

    def test_pdf_candidate(self) -> None:
        url = f"{BASE_URL}tlodocs/89R/billtext/pdf/SB00022I.pdf"
        session = FakeSession({url: FakeResponse(content=PDF_BYTES)})
        doc = make_fetcher(session).fetch_bill_document("SB22", DocKind.TEXT_PDF)
        assert doc is not None
        assert doc.is_pdf
        assert doc.version == "I"

    def test_oversized_pdf_skipped(self) -> None:
        url = f"{BASE_URL}tlodocs/89R/billtext/pdf/SB00022F.pdf"
        headers = {"Content-Length": str(MAX_PDF_BYTES + 1)}
        session = FakeSession({url: FakeResponse(content=PDF_BYTES, headers=headers)})
        assert make_fetcher(session).fetch_bill_document("SB22", DocKind.TEXT_PDF) is None


class TestPlausibility:
    def test_not_found_markers(self) -> None:
        assert looks_like_not_found("<p>The page cannot be found</p>")
        assert not looks_like_not_found("<p>Relating to school safety</p>")

    def test_pdf_requires_magic_bytes(self, fetcher: DocumentFetcher) -> None:
        assert fetcher.is_plausible(PDF_BYTES, DocKind.TEXT_PDF)
        assert not fetcher.is_plausible(b"<html>" + b"0" * 2000, DocKind.TEXT_PDF)

    def test_short_page_rejected(self, fetcher: DocumentFetcher) -> None:
        assert not fetcher.is_plausible("<html>stub</html>", DocKind.HISTORY)


class TestThrottle:
    def test_second_request_waits(self) -> None:
        sleeps: list[float] = []
        fetcher = DocumentFetcher(
            BASE_URL,
            ["89R"],
            session=FakeSession({REPORT_URL: FakeResponse(REPORT_HTML)}),  # type: ignore[arg-type]
            request_delay=1.0,
            sleep=sleeps.append,
        )
        fetcher.fetch_bill_list()
        fetcher.fetch_bill_list()
        assert sleeps
        assert 0 < sleeps[-1] <= 1.0
