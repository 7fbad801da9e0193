"""Shared data normalization utilities.

Centralizes date and text normalization so the extractor, pipeline and
storage code use consistent formats.

**Date normalization:**
    All dates are converted to ISO ``YYYY-MM-DD`` format on scrape/load.
    Handles the formats found on TLO pages:
    - ``1/13/2025``        (MM/DD/YYYY, history and report pages)
    - ``1/13/25``          (MM/DD/YY, older stage pages)
    - ``01-13-2025``       (MM-DD-YYYY)
    - ``2025-01-13``       (ISO)
    - ``January 13, 2025`` / ``Jan 13 2025`` (stage descriptions)
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

LOGGER = logging.getLogger(__name__)

# Ordered: first pattern that both matches and parses wins.
_DATE_PATTERNS: list[tuple[re.Pattern[str], tuple[str, ...]]] = [
    (re.compile(r"\b(\d{1,2}/\d{1,2}/\d{4})\b"), ("%m/%d/%Y",)),
    (re.compile(r"\b(\d{1,2}/\d{1,2}/\d{2})\b"), ("%m/%d/%y",)),
    (re.compile(r"\b(\d{1,2}-\d{1,2}-\d{4})\b"), ("%m-%d-%Y",)),
    (re.compile(r"\b(\d{4}-\d{1,2}-\d{1,2})\b"), ("%Y-%m-%d",)),
    (
        re.compile(
            r"\b((?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\.?"
            r"\s+\d{1,2},?\s+\d{4})\b",
            re.IGNORECASE,
        ),
        ("%B %d, %Y", "%b %d, %Y", "%B %d %Y", "%b %d %Y"),
    ),
]

_RE_WHITESPACE = re.compile(r"\s+")


def clean_text(text: str | None) -> str:
    """Collapse whitespace (including ``&nbsp;``) to single spaces and strip."""
    if not text:
        return ""
    return _RE_WHITESPACE.sub(" ", text.replace("\xa0", " ")).strip()


def _parse_with(candidate: str, formats: tuple[str, ...]) -> str:
    cleaned = candidate.replace(".", "").replace("Sept ", "Sep ")
    cleaned = _RE_WHITESPACE.sub(" ", cleaned)
    for fmt in formats:
        try:
            return datetime.strptime(cleaned, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return ""


def extract_date(text: str | None) -> str:
    """Find the first date in free text and return it as ISO ``YYYY-MM-DD``.

    Returns empty string when no supported date is present.

    Examples::

        >>> extract_date("Signed by the Governor 06/20/2025")
        '2025-06-20'
        >>> extract_date("Effective on May 31, 2025")
        '2025-05-31'
        >>> extract_date("Referred to State Affairs")
        ''
    """
    if not text or not isinstance(text, str):
        return ""
    for pattern, formats in _DATE_PATTERNS:
        for m in pattern.finditer(text):
            iso = _parse_with(m.group(1), formats)
            if iso:
                return iso
    return ""


def normalize_date(date_str: str | None) -> str:
    """Normalize any TLO date string to ISO ``YYYY-MM-DD`` format.

    Returns empty string if the input is None or empty.  Unparseable input is
    returned unchanged to avoid data loss.

    Examples::

        >>> normalize_date("1/13/2025")
        '2025-01-13'
        >>> normalize_date("2025-01-13")
        '2025-01-13'
        >>> normalize_date(None)
        ''
    """
    if not date_str or not isinstance(date_str, str):
        return ""

    date_str = date_str.strip()
    if not date_str:
        return ""

    # Quick check: already ISO format
    if re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        return date_str

    iso = extract_date(date_str)
    if iso:
        return iso

    LOGGER.debug("normalize_date: unparseable date %r", date_str)
    return date_str


# ── Stored document validation ───────────────────────────────────────────────


def validate_bill_dict(d: dict) -> list[str]:
    """Check a stored bill document for the fields readers rely on.

    Returns a list of warning messages; an empty list means the document is
    usable.  Checked on every read back from the bill store.
    """
    warnings = []

    for key in ("id", "shortTitle", "status"):
        val = d.get(key)
        if not val or not isinstance(val, str) or not val.strip():
            warnings.append(f"Bill missing required field '{key}': {d.get('id', '?')}")

    for key in ("sponsors", "topics", "stages"):
        if key in d and not isinstance(d[key], list):
            warnings.append(f"Bill {d.get('id', '?')}: '{key}' must be a list")

    return warnings
