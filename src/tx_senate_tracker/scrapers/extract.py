"""HTML extraction for TLO report, history, caption and stage pages.

TLO markup is old ASP.NET table soup without stable classes, so extraction
works on flattened text wherever it can: each table is reduced to one line
per row with cells joined by ``" | "``, and fields are pulled out with
label regexes (``Author:``, ``Last Action:``, ...).  Every extractor degrades
to empty values instead of raising; only :func:`parse_bill_list` raises, and
only when it is handed something that is not HTML text at all.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Tag

from ..errors import ScrapingError
from ..identifiers import standardize
from ..models import BillStatus, Stage
from ..normalize import clean_text, extract_date, normalize_date
from ..status import infer_status

LOGGER = logging.getLogger(__name__)

_RE_SENATE_BILL = re.compile(r"\bSB\s*(\d+)", re.IGNORECASE)

# Value runs to the next cell separator or end of line, never across a row
# break.  The optional leading "|" handles labels that sit in their own cell.
_LABEL_VALUE = r"[ \t]*(?:\|[ \t]*)?([^|\n]+)"
_RE_AUTHOR = re.compile(r"(?<!co-)\bAuthors?:" + _LABEL_VALUE, re.IGNORECASE)
_RE_SPONSOR = re.compile(r"(?<!co-)\bSponsors?:" + _LABEL_VALUE, re.IGNORECASE)
_RE_COAUTHOR = re.compile(r"\bCo-?authors?:" + _LABEL_VALUE, re.IGNORECASE)
_RE_COMMITTEE = re.compile(r"\bCommittee:" + _LABEL_VALUE, re.IGNORECASE)
_RE_LAST_ACTION = re.compile(r"\bLast Action:" + _LABEL_VALUE, re.IGNORECASE)
_RE_CAPTION = re.compile(r"\bCaption:[ \t]*(?:\|[ \t]*)?(.+?)(?:\n|$)", re.IGNORECASE)
_RE_FILED = re.compile(r"\bFiled:" + _LABEL_VALUE, re.IGNORECASE)

_RE_NAME_SPLIT = re.compile(r"\s*(?:,|;|\band\b)\s*", re.IGNORECASE)

_RE_STAGE_LEGEND = re.compile(r"Stage\s+(\d+)\s+(.+)", re.IGNORECASE)
_RE_STAGE_CELL = re.compile(r"^Stage\s+(\d+)", re.IGNORECASE)
_RE_STAGE_SENTENCE = re.compile(r"Stage\s+\d+[^.]*\.", re.IGNORECASE)

_RE_CAPTION_ID = re.compile(r"caption", re.IGNORECASE)
_RE_SUMMARY_ATTR = re.compile(r"summary", re.IGNORECASE)
_RE_CAPTION_PREFIX = re.compile(r"^Caption(?:\s+Text)?:\s*", re.IGNORECASE)

MIN_CAPTION_LENGTH = 20
MIN_BILL_TEXT_LENGTH = 200
SHORT_TITLE_MAX = 100

TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Education": ("education", "school", "student", "teacher", "university", "college"),
    "Healthcare": ("health", "medical", "hospital", "medicare", "medicaid", "insurance"),
    "Transportation": ("transportation", "highway", "road", "traffic", "vehicle", "motor"),
    "Environment": ("environment", "water", "air", "pollution", "conservation", "energy"),
    "Criminal Justice": ("criminal", "crime", "police", "court", "prison", "justice"),
    "Business": ("business", "commerce", "economic", "tax", "finance", "employment"),
    "Government": ("government", "public", "administration", "agency", "department"),
}

# Keywords anchor at a word start so "air" does not match "affairs".
_TOPIC_PATTERNS: dict[str, re.Pattern[str]] = {
    topic: re.compile(r"\b(?:" + "|".join(words) + r")", re.IGNORECASE)
    for topic, words in TOPIC_KEYWORDS.items()
}


# ── Data types ───────────────────────────────────────────────────────────────


@dataclass
class PartialBill:
    """Fields recoverable from one table on the Senate-filed report."""

    bill_id: str  # canonical, e.g. "SB22"
    caption: str = ""
    authors: list[str] = field(default_factory=list)
    sponsors: list[str] = field(default_factory=list)
    co_authors: list[str] = field(default_factory=list)
    committee: str = ""
    last_action: str = ""
    last_action_date: str = ""
    filed_date: str = ""


@dataclass
class BillHistory:
    """Fields recoverable from a bill's History page."""

    caption: str = ""
    authors: list[str] = field(default_factory=list)
    co_authors: list[str] = field(default_factory=list)
    sponsors: list[str] = field(default_factory=list)
    co_sponsors: list[str] = field(default_factory=list)
    committee: str = ""
    last_action: str = ""
    last_action_date: str = ""
    filed_date: str = ""

    @property
    def primary_author(self) -> str:
        return self.authors[0] if self.authors else ""


# ── Helpers ──────────────────────────────────────────────────────────────────


def _soup(html: str | Tag) -> BeautifulSoup | Tag:
    if isinstance(html, Tag):
        return html
    return BeautifulSoup(html or "", "html.parser")


def _cell_text(cell: Tag) -> str:
    return clean_text(cell.get_text(" "))


def flatten_table(table: Tag) -> str:
    """One line per row, cells joined with ``" | "``."""
    lines = []
    for row in table.find_all("tr"):
        cells = [_cell_text(c) for c in row.find_all(["td", "th"])]
        cells = [c for c in cells if c]
        if cells:
            lines.append(" | ".join(cells))
    if not lines:
        return clean_text(table.get_text(" "))
    return "\n".join(lines)


def _match(pattern: re.Pattern[str], text: str) -> str:
    m = pattern.search(text)
    if not m:
        return ""
    value = clean_text(m.group(1))
    # An empty label cell followed by the next label.
    if value.endswith(":"):
        return ""
    return value


def split_names(value: str) -> list[str]:
    """``"Hughes, Bettencourt and Creighton"`` -> three names."""
    if not value:
        return []
    return [n for n in (clean_text(p) for p in _RE_NAME_SPLIT.split(value)) if n]


# ── Senate-filed report ──────────────────────────────────────────────────────


def extract_bill_from_listing(fragment: str | Tag) -> PartialBill | None:
    """Extract one bill from a report table (a ``Tag`` or an HTML string).

    Missing labels give empty values.  Returns ``None`` only when the
    fragment names no Senate bill.
    """
    if isinstance(fragment, Tag):
        table = fragment if fragment.name == "table" else fragment.find("table") or fragment
        text = flatten_table(table)
    else:
        soup = _soup(fragment)
        table = soup.find("table")
        text = flatten_table(table) if table is not None else clean_text(soup.get_text(" "))

    m = _RE_SENATE_BILL.search(text)
    if not m:
        return None
    bill_id = standardize(f"SB{m.group(1)}")
    if bill_id is None:
        return None

    last_action = _match(_RE_LAST_ACTION, text)
    last_action_date = extract_date(last_action)

    filed_date = extract_date(_match(_RE_FILED, text))
    if not filed_date and infer_status(last_action) is BillStatus.FILED:
        filed_date = last_action_date

    return PartialBill(
        bill_id=bill_id,
        caption=_match(_RE_CAPTION, text),
        authors=split_names(_match(_RE_AUTHOR, text)),
        sponsors=split_names(_match(_RE_SPONSOR, text)),
        co_authors=split_names(_match(_RE_COAUTHOR, text)),
        committee=_match(_RE_COMMITTEE, text),
        last_action=last_action,
        last_action_date=last_action_date,
        filed_date=filed_date,
    )


def parse_bill_list(html: str) -> list[PartialBill]:
    """Parse the Senate-filed report into partial bills, one per table.

    Layout tables that wrap other tables are skipped.  A table that fails to
    parse is logged and skipped; the first table wins for duplicate bills.
    """
    if not isinstance(html, str):
        raise ScrapingError(
            "Bill list must be HTML text", context={"type": type(html).__name__}
        )

    soup = BeautifulSoup(html, "html.parser")
    bills: list[PartialBill] = []
    seen: set[str] = set()

    for index, table in enumerate(soup.find_all("table")):
        if table.find("table") is not None:
            continue
        try:
            if not _RE_SENATE_BILL.search(table.get_text(" ")):
                continue
            partial = extract_bill_from_listing(table)
        except Exception as exc:
            LOGGER.warning("Skipping report table %d: %s", index, exc)
            continue
        if partial is None or partial.bill_id in seen:
            continue
        seen.add(partial.bill_id)
        bills.append(partial)
        if len(bills) % 100 == 0:
            LOGGER.info("Parsed %d bills from report ...", len(bills))

    LOGGER.info("Parsed %d Senate bills from report", len(bills))
    return bills


# ── History and caption pages ────────────────────────────────────────────────


def _label_pairs(soup: BeautifulSoup | Tag) -> dict[str, str]:
    """Map ``label`` -> value for every ``Label:`` cell followed by a value cell."""
    pairs: dict[str, str] = {}
    for row in soup.find_all("tr"):
        cells = row.find_all(["td", "th"], recursive=False) or row.find_all(["td", "th"])
        texts = [_cell_text(c) for c in cells]
        for i, text in enumerate(texts[:-1]):
            if text.endswith(":"):
                label = text[:-1].strip().lower()
                value = texts[i + 1]
                if label and value and not value.endswith(":"):
                    pairs.setdefault(label, value)
    return pairs


def _caption_candidate(text: str) -> str:
    text = _RE_CAPTION_PREFIX.sub("", clean_text(text))
    return text if len(text) > MIN_CAPTION_LENGTH else ""


def extract_caption_text(html: str) -> str:
    """Best caption on a History/Captions/BillSummary page, or ``""``.

    Tried in order: a labeled ``Caption`` row, an element whose id mentions
    the caption, then summary blocks.  Values of 20 characters or fewer are
    treated as noise.
    """
    soup = _soup(html)

    pairs = _label_pairs(soup)
    for label in ("caption text", "caption"):
        caption = _caption_candidate(pairs.get(label, ""))
        if caption:
            return caption

    for el in soup.find_all(id=_RE_CAPTION_ID):
        caption = _caption_candidate(el.get_text(" "))
        if caption:
            return caption

    for el in soup.find_all(class_=_RE_SUMMARY_ATTR) + soup.find_all(id=_RE_SUMMARY_ATTR):
        caption = _caption_candidate(el.get_text(" "))
        if caption:
            return caption

    return ""


def _first(pairs: dict[str, str], *labels: str) -> str:
    for label in labels:
        if pairs.get(label):
            return pairs[label]
    return ""


def _filed_date_from_rows(soup: BeautifulSoup | Tag) -> str:
    """Date on the first action row that records the filing."""
    for row in soup.find_all("tr"):
        text = _cell_text(row)
        if re.search(r"\bfiled\b", text, re.IGNORECASE):
            date = extract_date(text)
            if date:
                return date
    return ""


def extract_history(html: str) -> BillHistory:
    """Pull the labeled fields off a bill's History page."""
    soup = _soup(html)
    pairs = _label_pairs(soup)

    last_action = _first(pairs, "last action")
    filed_date = normalize_date(_first(pairs, "filed", "date filed"))
    if not filed_date:
        filed_date = _filed_date_from_rows(soup)

    return BillHistory(
        caption=extract_caption_text(html),
        authors=split_names(_first(pairs, "author", "authors")),
        co_authors=split_names(_first(pairs, "coauthor", "coauthors", "co-author")),
        sponsors=split_names(_first(pairs, "sponsor", "sponsors")),
        co_sponsors=split_names(_first(pairs, "cosponsor", "cosponsors", "co-sponsor")),
        committee=_first(pairs, "senate committee", "committee", "house committee"),
        last_action=last_action,
        last_action_date=extract_date(last_action),
        filed_date=filed_date,
    )


# ── Stage page ───────────────────────────────────────────────────────────────


def _sort_stages(stages: list[Stage]) -> list[Stage]:
    # Stable: undated stages keep source order after the dated ones.
    return sorted(stages, key=lambda s: (s.date == "", s.date))


def extract_stage_history(html: str) -> list[Stage]:
    """Parse the BillStages page into stages ordered by date.

    Row-level ``Stage N`` cells are preferred, using the legend text when
    the row's own description cell is blank.  When no rows qualify, any
    ``Stage N ... .`` sentence in the page text is used instead.
    """
    soup = _soup(html)
    rows = soup.find_all("tr")

    legends: dict[int, str] = {}
    for row in rows:
        m = _RE_STAGE_LEGEND.search(_cell_text(row))
        if m:
            legends.setdefault(int(m.group(1)), clean_text(m.group(2)))

    stages: list[Stage] = []
    for row in rows:
        cells = row.find_all("td")
        if len(cells) < 2:
            continue
        m = _RE_STAGE_CELL.match(_cell_text(cells[0]))
        if not m:
            continue
        number = int(m.group(1))
        description = _cell_text(cells[1]) or legends.get(number, "")
        if len(description) < 3:
            continue
        date = extract_date(description) or extract_date(_cell_text(row))
        stages.append(
            Stage(
                stage_number=number,
                action=description,
                status=infer_status(description),
                date=date,
            )
        )

    if not stages:
        page_text = clean_text(soup.get_text(" "))
        for index, m in enumerate(_RE_STAGE_SENTENCE.finditer(page_text)):
            sentence = clean_text(m.group(0))
            stages.append(
                Stage(
                    stage_number=index + 1,
                    action=sentence,
                    status=infer_status(sentence),
                    date=extract_date(sentence),
                )
            )

    return _sort_stages(stages)


# ── Derived fields ───────────────────────────────────────────────────────────


def extract_topics(text: str | None) -> list[str]:
    """Keyword topics for a caption; ``["General"]`` when nothing matches."""
    if not text:
        return ["General"]
    topics = [topic for topic, pattern in _TOPIC_PATTERNS.items() if pattern.search(text)]
    return topics or ["General"]


def extract_short_title(caption: str | None) -> str:
    """First sentence of the caption, or its first 97 characters plus ``...``."""
    if not caption:
        return ""
    caption = clean_text(caption)
    first_sentence = caption.split(".")[0].strip()
    if len(first_sentence) <= SHORT_TITLE_MAX:
        return first_sentence
    return caption[: SHORT_TITLE_MAX - 3].strip() + "..."


def extract_bill_text_html(html: str) -> str:
    """Readable text of a ``tlodocs`` HTML bill, or ``""`` when too short."""
    soup = _soup(html)
    for tag in soup.find_all(["nav", "header", "footer", "script", "style"]):
        tag.decompose()
    root = soup.find("body") or soup
    text = clean_text(root.get_text(" "))
    if len(text) < MIN_BILL_TEXT_LENGTH:
        return ""
    return text
