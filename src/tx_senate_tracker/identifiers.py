"""Bill identifier standardization.

Every bill reference, whether typed by a user or scraped from TLO, is reduced
to one canonical storage key:

- ``"SB 1"``, ``"sb1"``, ``"S.B. 1"``, ``"Senate Bill 1"`` -> ``"SB1"``
- ``"HB  007"`` -> ``"HB007"`` (leading zeros are preserved)

The display form puts a single space between prefix and digits (``"SB 1"``).
Lookup variants exist only for the read path, to find records stored under
older, inconsistent keys.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import quote, unquote

LOGGER = logging.getLogger(__name__)

BILL_PREFIXES: tuple[str, ...] = ("SB", "HB", "SCR", "HCR", "SR", "HR", "SJR", "HJR")

# Checked in declaration order; the first match wins.
_FULL_NAME_PREFIXES: tuple[tuple[str, str], ...] = (
    ("SENATE BILL", "SB"),
    ("HOUSE BILL", "HB"),
    ("SENATE CONCURRENT RESOLUTION", "SCR"),
    ("HOUSE CONCURRENT RESOLUTION", "HCR"),
    ("SENATE RESOLUTION", "SR"),
    ("HOUSE RESOLUTION", "HR"),
    ("SENATE JOINT RESOLUTION", "SJR"),
    ("HOUSE JOINT RESOLUTION", "HJR"),
)

_RE_CANONICAL = re.compile(r"^(SB|HB|SCR|HCR|SR|HR|SJR|HJR)(\d+)$")
_RE_STRIP = re.compile(r"[.\s]+")

# TLO document file names pad the number to five digits: SB00001.
DOCUMENT_NUMBER_WIDTH = 5


@dataclass(frozen=True)
class ParsedBillId:
    prefix: str  # e.g. "SB"
    number: str  # digits as written, e.g. "007"
    full_id: str  # e.g. "SB007"


class IdStandardizer:
    """Convert free-form bill references to canonical ids and back."""

    def __init__(
        self,
        prefixes: tuple[str, ...] = BILL_PREFIXES,
        full_names: tuple[tuple[str, str], ...] = _FULL_NAME_PREFIXES,
    ):
        self.prefixes = prefixes
        self.full_names = full_names

    def _expand_full_name(self, text: str) -> str:
        upper = text.upper()
        for full_name, abbrev in self.full_names:
            if upper.startswith(full_name):
                return abbrev + upper[len(full_name) :]
        return upper

    def standardize(self, raw_id: object) -> str | None:
        """Return the canonical id for *raw_id*, or ``None`` if it is not a bill id.

        Never raises.  Examples::

            >>> IdStandardizer().standardize("Senate Bill 22")
            'SB22'
            >>> IdStandardizer().standardize("S.B. 1")
            'SB1'
            >>> IdStandardizer().standardize("XB 1") is None
            True
        """
        if raw_id is None:
            return None
        text = str(raw_id).strip()
        if not text:
            return None

        candidate = self._expand_full_name(text)
        candidate = _RE_STRIP.sub("", candidate).upper()

        if not self.is_valid(candidate):
            LOGGER.warning("Invalid bill ID format: %r -> %r", raw_id, candidate)
            return None
        return candidate

    def is_valid(self, bill_id: str) -> bool:
        if not bill_id or not isinstance(bill_id, str):
            return False
        m = _RE_CANONICAL.match(bill_id)
        return bool(m) and m.group(1) in self.prefixes

    def parse(self, standard_id: str) -> ParsedBillId | None:
        if not isinstance(standard_id, str):
            return None
        m = _RE_CANONICAL.match(standard_id)
        if not m:
            return None
        return ParsedBillId(prefix=m.group(1), number=m.group(2), full_id=standard_id)

    def to_display_format(self, standard_id: str) -> str:
        """``"SB1"`` -> ``"SB 1"``.  Unparsable input comes back unchanged."""
        parsed = self.parse(standard_id)
        if parsed is None:
            return standard_id
        return f"{parsed.prefix} {parsed.number}"

    def to_url_format(self, standard_id: str) -> str:
        return quote(self.to_display_format(standard_id))

    def from_url_format(self, url_id: str) -> str | None:
        return self.standardize(unquote(url_id))

    def to_document_number(self, standard_id: str) -> str:
        """``"SB1"`` -> ``"SB00001"``, the form used in TLO document file names."""
        parsed = self.parse(standard_id)
        if parsed is None:
            return standard_id
        return f"{parsed.prefix}{int(parsed.number):0{DOCUMENT_NUMBER_WIDTH}d}"

    def generate_lookup_variants(self, raw_id: object) -> set[str]:
        """All spellings a stored record might be keyed under.

        Canonical, display, both lowercased, and the trimmed raw value when it
        differs.  Empty set when *raw_id* does not standardize.
        """
        standard_id = self.standardize(raw_id)
        if standard_id is None:
            return set()

        display = self.to_display_format(standard_id)
        variants = {standard_id, display, standard_id.lower(), display.lower()}
        raw = str(raw_id).strip()
        if raw and raw != standard_id:
            variants.add(raw)
        return variants


_DEFAULT = IdStandardizer()


def standardize(raw_id: object) -> str | None:
    return _DEFAULT.standardize(raw_id)


def to_display_format(standard_id: str) -> str:
    return _DEFAULT.to_display_format(standard_id)


def to_document_number(standard_id: str) -> str:
    return _DEFAULT.to_document_number(standard_id)


def generate_lookup_variants(raw_id: object) -> set[str]:
    return _DEFAULT.generate_lookup_variants(raw_id)
