"""Full bill text from TLO ``tlodocs``.

For each bill:
1. **HTML first**: ``/tlodocs/{session}/billtext/html/SB00022F.htm`` is
   cheap to fetch and needs no layout analysis.
2. **PDF fallback**: the same document as ``.pdf``, extracted with
   pdfplumber.  Enrolled versions of long bills sometimes only exist as PDF.
3. Either way the text is cleaned (page headers, line numbers, unicode
   punctuation) and stored with no truncation.

Session and version fallback (``89R`` -> ``88R``, ``F`` -> ``I`` -> ``E`` ->
``S``) is handled by :class:`~tx_senate_tracker.scrapers.fetcher.DocumentFetcher`.
"""

from __future__ import annotations

import io
import logging
import re

import pdfplumber

from .extract import extract_bill_text_html
from .fetcher import DocKind, DocumentFetcher, FetchedDocument

LOGGER = logging.getLogger(__name__)


# ── PDF text extraction ──────────────────────────────────────────────────────


def extract_text_from_pdf(pdf_bytes: bytes) -> str:
    """Concatenate the text of every page."""
    text_parts: list[str] = []
    with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)
    return "\n".join(text_parts)


# ── Text cleaning ────────────────────────────────────────────────────────────

# Running headers on TLO bill documents
_RE_PAGE_HEADER = re.compile(
    r"^(?:"
    r"\d{2}[RS]\d*\s*\d+\s+[A-Z]{2,4}-[A-Z]"  # drafting number "89R1234 JES-D"
    r"|[SH]\.?\s?[BR]\.?\s+No\.\s*\d+"  # "S.B. No. 22"
    r"|[SH]\.?\s?[CJ]\.?\s?R\.?\s+No\.\s*\d+"  # "S.J.R. No. 3"
    r"|Page\s+-?\s*\d+\s*-?"  # "Page -2-"
    r"|-\s*\d+\s*-"  # centered page numbers like "- 3 -"
    r")\s*$",
    re.IGNORECASE | re.MULTILINE,
)

# Leading line numbers at the start of each line
_RE_LINE_NUMBER = re.compile(r"^[ \t]{0,4}\d{1,2}[ \t]{2,}", re.MULTILINE)

_RE_MULTI_BLANK = re.compile(r"\n{3,}")


def clean_bill_text(raw_text: str) -> str:
    """Clean extracted bill text for storage.

    - Normalises unicode punctuation (curly quotes, dashes, nbsp)
    - Strips running page headers and leading line numbers
    - Collapses runs of spaces and blank lines
    """
    if not raw_text:
        return ""

    text = raw_text
    text = text.replace("\u2018", "'").replace("\u2019", "'")  # curly single quotes
    text = text.replace("\u201c", '"').replace("\u201d", '"')  # curly double quotes
    text = text.replace("\u2013", "-").replace("\u2014", "--")  # en/em dashes
    text = text.replace("\u00a0", " ")  # non-breaking space

    text = _RE_PAGE_HEADER.sub("", text)
    text = _RE_LINE_NUMBER.sub("", text)

    text = re.sub(r"[^\S\n]+", " ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _RE_MULTI_BLANK.sub("\n\n", text)
    return text.strip()


def extract_and_clean(pdf_bytes: bytes, source: str = "") -> str:
    """Extract and clean a PDF; ``""`` when pdfplumber cannot read it."""
    try:
        raw_text = extract_text_from_pdf(pdf_bytes)
    except Exception as exc:
        LOGGER.warning("Failed to parse PDF %s: %s", source, exc)
        return ""
    return clean_bill_text(raw_text)


def text_from_document(doc: FetchedDocument) -> str:
    if doc.is_pdf:
        return extract_and_clean(doc.content, doc.url)
    return clean_bill_text(extract_bill_text_html(doc.content))


# ── Main per-bill entry point ────────────────────────────────────────────────


def fetch_bill_text(fetcher: DocumentFetcher, bill_id: str) -> tuple[str, FetchedDocument | None]:
    """Fetch and clean the full text of one bill.

    Returns ``(text, document)``; ``("", None)`` when neither an HTML nor a
    PDF version could be found.  Network errors propagate.
    """
    for kind in (DocKind.TEXT_HTML, DocKind.TEXT_PDF):
        doc = fetcher.fetch_bill_document(bill_id, kind)
        if doc is None:
            continue
        text = text_from_document(doc)
        if text:
            LOGGER.debug("Bill text for %s from %s", bill_id, doc.url)
            return text, doc
        LOGGER.debug("Empty text after extraction: %s", doc.url)
    return "", None
