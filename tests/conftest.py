from __future__ import annotations

from pathlib import Path

import pytest

from tx_senate_tracker.circuit_breaker import CircuitBreaker
from tx_senate_tracker.fallback import FallbackCache
from tx_senate_tracker.models import BillRecord, BillStatus, Sponsor, Stage
from tx_senate_tracker.pipeline import BillPipeline
from tx_senate_tracker.retry import RetryController
from tx_senate_tracker.scheduler import ScrapingScheduler
from tx_senate_tracker.scrapers.fetcher import DocumentFetcher
from tx_senate_tracker.storage import BillRepository, InMemoryStore

BASE_URL = "https://tlo.test/"
SESSIONS = ["89R", "88R"]

REPORT_URL = f"{BASE_URL}Reports/Report.aspx?LegSess=89R&ID=senatefiled"


def page_url(page: str, bill_id: str, session: str = "89R") -> str:
    return f"{BASE_URL}BillLookup/{page}.aspx?LegSess={session}&Bill={bill_id}"


_PADDING = "<p>" + "Texas Legislature Online, 89th Legislature, Regular Session. " * 20 + "</p>"

# ── Report page ───────────────────────────────────────────────────────────────

SB22_TABLE = """
<table>
  <tr><td><a href="/BillLookup/History.aspx?LegSess=89R&Bill=SB22">SB 22</a></td></tr>
  <tr><td>Author:</td><td>Hughes</td></tr>
  <tr><td>Caption:</td><td>Relating to the creation of a public school safety program.</td></tr>
  <tr><td>Committee:</td><td>State Affairs</td></tr>
  <tr><td>Last Action:</td><td>01/13/2025 S Filed</td></tr>
</table>
"""

SB1_TABLE = """
<table>
  <tr><td><a href="/BillLookup/History.aspx?LegSess=89R&Bill=SB1">SB 1</a></td></tr>
  <tr><td>Author:</td><td>Huffman</td></tr>
  <tr><td>Caption:</td><td>General Appropriations Bill.</td></tr>
  <tr><td>Last Action:</td><td>02/03/2025 S Referred to Finance</td></tr>
</table>
"""

HB5_TABLE = """
<table>
  <tr><td>HB 5</td></tr>
  <tr><td>Author:</td><td>Burrows</td></tr>
  <tr><td>Last Action:</td><td>01/14/2025 H Filed</td></tr>
</table>
"""

REPORT_HTML = f"""
<html><head><title>Bills Filed in the Senate</title></head><body>
<h1>Senate Bills Filed</h1>
{_PADDING}
<table class="layout"><tr><td>{SB22_TABLE}</td></tr></table>
{SB1_TABLE}
{HB5_TABLE}
{SB22_TABLE}
</body></html>
"""

# ── History page ──────────────────────────────────────────────────────────────

SB22_HISTORY_HTML = f"""
<html><body>
<table>
  <tr><td>Bill:</td><td>SB 22</td></tr>
  <tr><td>Last Action:</td><td>06/20/2025 G Signed by the Governor</td></tr>
  <tr><td>Caption Text:</td><td>Relating to the creation of a public school safety program.</td></tr>
  <tr><td>Author:</td><td>Hughes</td></tr>
  <tr><td>Coauthor:</td><td>Bettencourt, Creighton</td></tr>
  <tr><td>Sponsor:</td><td>Leach</td></tr>
  <tr><td>Senate Committee:</td><td>State Affairs</td></tr>
</table>
<table>
  <tr><th>Chamber</th><th>Description</th><th>Date</th></tr>
  <tr><td>S</td><td>Filed</td><td>01/13/2025</td></tr>
  <tr><td>S</td><td>Referred to State Affairs</td><td>02/03/2025</td></tr>
  <tr><td>G</td><td>Signed by the Governor</td><td>06/20/2025</td></tr>
</table>
{_PADDING}
</body></html>
"""

# ── Stages page ───────────────────────────────────────────────────────────────

_SB22_STAGE_ROWS = """
  <tr><td>Stage 1</td><td>Filed 01/13/2025</td></tr>
  <tr><td>Stage 2</td><td>Referred to Senate Committee 02/03/2025</td></tr>
  <tr><td>Stage 3</td><td>Passed the Senate 03/20/2025</td></tr>
  <tr><td>Stage 4</td><td>Signed by Governor 06/20/2025</td></tr>
"""


def stages_html(extra_rows: str = "") -> str:
    return f"""
<html><body>
<h2>Bill Stages</h2>
<table>{_SB22_STAGE_ROWS}{extra_rows}</table>
{_PADDING}
</body></html>
"""


SB22_STAGES_HTML = stages_html()
SB22_STAGES_EFFECTIVE_HTML = stages_html(
    "<tr><td>Stage 5</td><td>Bill becomes law 09/01/2025</td></tr>"
)


# ── Fake HTTP ─────────────────────────────────────────────────────────────────


class FakeResponse:
    def __init__(
        self,
        text: str = "",
        status_code: int = 200,
        content: bytes | None = None,
        headers: dict | None = None,
    ):
        self.text = text
        self.status_code = status_code
        self.content = content if content is not None else text.encode("utf-8")
        self.headers = headers or {}
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stand-in for ``requests.Session``: exact URL -> response or exception.

    Unknown URLs answer 404.
    """

    def __init__(self, responses: dict[str, FakeResponse | Exception] | None = None):
        self.responses: dict[str, FakeResponse | Exception] = dict(responses or {})
        self.calls: list[str] = []

    def get(self, url: str, timeout: float | None = None, **kwargs: object) -> FakeResponse:
        self.calls.append(url)
        answer = self.responses.get(url)
        if answer is None:
            return FakeResponse("", status_code=404)
        if isinstance(answer, Exception):
            raise answer
        return answer


class MockClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def no_sleep(seconds: float) -> None:
    return None


def make_fetcher(session: FakeSession) -> DocumentFetcher:
    return DocumentFetcher(
        BASE_URL,
        SESSIONS,
        session=session,  # type: ignore[arg-type]
        request_delay=0,
        sleep=no_sleep,
    )


def make_pipeline(session: FakeSession, **kwargs: object) -> BillPipeline:
    kwargs.setdefault("retry", RetryController(sleep=no_sleep))
    kwargs.setdefault("detail_delay", 0)
    kwargs.setdefault("sleep", no_sleep)
    return BillPipeline(make_fetcher(session), **kwargs)  # type: ignore[arg-type]


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def tlo_session() -> FakeSession:
    """TLO with a two-bill report and full detail pages for SB 22 only."""
    return FakeSession(
        {
            REPORT_URL: FakeResponse(REPORT_HTML),
            page_url("History", "SB22"): FakeResponse(SB22_HISTORY_HTML),
            page_url("BillStages", "SB22"): FakeResponse(SB22_STAGES_HTML),
        }
    )


@pytest.fixture
def fetcher(tlo_session: FakeSession) -> DocumentFetcher:
    return make_fetcher(tlo_session)


@pytest.fixture
def pipeline(tlo_session: FakeSession) -> BillPipeline:
    return make_pipeline(
        tlo_session,
        breaker=CircuitBreaker("tlo-test", failure_threshold=5, recovery_timeout=60),
        fallback=FallbackCache(),
    )


@pytest.fixture
def repository() -> BillRepository:
    return BillRepository(InMemoryStore())


@pytest.fixture
def scheduler(pipeline: BillPipeline, repository: BillRepository, tmp_path: Path) -> ScrapingScheduler:
    return ScrapingScheduler(
        pipeline,
        repository,
        run_at="06:00",
        timezone="America/Chicago",
        max_retries=3,
        run_log_path=tmp_path / "runs.jsonl",
        sleep=no_sleep,
    )


@pytest.fixture
def sample_record() -> BillRecord:
    return BillRecord(
        id="SB22",
        short_title="Relating to the creation of a public school safety program",
        full_title="Relating to the creation of a public school safety program.",
        status=BillStatus.SIGNED,
        abstract="Relating to the creation of a public school safety program.",
        sponsors=[Sponsor(name="Hughes")],
        co_sponsors=["Bettencourt", "Creighton"],
        committee="State Affairs",
        stages=[
            Stage(1, "Filed 01/13/2025", BillStatus.FILED, "2025-01-13"),
            Stage(4, "Signed by Governor 06/20/2025", BillStatus.SIGNED, "2025-06-20"),
        ],
        last_action="06/20/2025 G Signed by the Governor",
        filed_date="2025-01-13",
        last_action_date="2025-06-20",
        official_url=page_url("History", "SB22"),
        session="89R",
        topics=["Education", "Government"],
    )
