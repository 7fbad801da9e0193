"""Centralized configuration for the Texas Senate bill tracker.

All settings live here so they can be overridden by environment variables or a
``.env`` file without touching source code.

**Profile system:** Set ``TX_PROFILE=dev`` (default) or ``TX_PROFILE=prod``
to get sensible defaults for each environment.  Any individual ``TX_*`` var
still overrides the profile value.

Usage::

    from tx_senate_tracker.config import BASE_URL, get_sessions

    url = f"{BASE_URL}BillLookup/History.aspx?LegSess={get_sessions()[0]}&Bill=SB1"
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from current working directory (project root when running uvicorn / scripts)
load_dotenv()

LOGGER = logging.getLogger(__name__)

# ── Profile: one knob for the whole environment ──────────────────────────────
# "dev" = short politeness delays, no background scheduler.
# "prod" = full delays, daily scheduler on.

PROFILE: str = os.getenv("TX_PROFILE", "dev").lower().strip()

_PROFILE_DEFAULTS: dict[str, dict[str, str]] = {
    "dev": {
        "TX_REQUEST_DELAY": "0.25",
        "TX_SCHEDULER_ENABLED": "0",
        "TX_DETAIL_LIMIT": "20",
        "TX_FETCH_BILL_TEXT": "0",
    },
    "prod": {
        "TX_REQUEST_DELAY": "1.0",
        "TX_SCHEDULER_ENABLED": "1",
        "TX_DETAIL_LIMIT": "0",
        "TX_FETCH_BILL_TEXT": "1",
    },
}

if PROFILE not in _PROFILE_DEFAULTS:
    LOGGER.warning("Unknown TX_PROFILE=%r, falling back to 'dev'.", PROFILE)
    PROFILE = "dev"

_defaults = _PROFILE_DEFAULTS[PROFILE]


def _env(key: str, fallback: str = "") -> str:
    """Read an env var, falling back to profile default then *fallback*."""
    return os.getenv(key, _defaults.get(key, fallback))


# ── Texas Legislature Online ─────────────────────────────────────────────────
BASE_URL: str = _env("TX_BASE_URL", "https://capitol.texas.gov/").rstrip("/") + "/"

# Reverse-chronological; the first entry is the current session.
_SESSIONS_RAW: str = _env("TX_SESSIONS", "89R,88R,87R")

USER_AGENT: str = _env(
    "TX_USER_AGENT",
    "TexasSenateBillTracker/0.1 (+https://capitol.texas.gov; automated daily refresh)",
)

# ── HTTP ─────────────────────────────────────────────────────────────────────
REQUEST_TIMEOUT: float = float(_env("TX_REQUEST_TIMEOUT", "30"))
# The senate-filed report is one large page.
LIST_TIMEOUT: float = float(_env("TX_LIST_TIMEOUT", "45"))
REQUEST_DELAY: float = float(_env("TX_REQUEST_DELAY", "1.0"))

# ── Retry / circuit breaker ──────────────────────────────────────────────────
MAX_RETRIES: int = int(_env("TX_MAX_RETRIES", "3"))
RETRY_BASE_DELAY: float = float(_env("TX_RETRY_BASE_DELAY", "2.0"))
RETRY_MAX_DELAY: float = float(_env("TX_RETRY_MAX_DELAY", "60"))
BREAKER_FAILURE_THRESHOLD: int = int(_env("TX_BREAKER_FAILURE_THRESHOLD", "5"))
BREAKER_RECOVERY_TIMEOUT: float = float(_env("TX_BREAKER_RECOVERY_TIMEOUT", "60"))
FALLBACK_TTL: float = float(_env("TX_FALLBACK_TTL", str(24 * 60 * 60)))

# ── Scheduler ────────────────────────────────────────────────────────────────
SCHEDULE_TIME: str = _env("TX_SCHEDULE_TIME", "06:00").strip()
SCHEDULE_TIMEZONE: str = _env("TX_SCHEDULE_TIMEZONE", "America/Chicago").strip()
SCHEDULER_ENABLED: bool = _env("TX_SCHEDULER_ENABLED") == "1"
SCHEDULER_BASE_RETRY_DELAY: float = float(_env("TX_SCHEDULER_RETRY_DELAY", "5.0"))

# ── Pipeline ─────────────────────────────────────────────────────────────────
DETAIL_LIMIT: int = int(_env("TX_DETAIL_LIMIT", "0"))
FETCH_BILL_TEXT: bool = _env("TX_FETCH_BILL_TEXT") == "1"

# ── Directories ──────────────────────────────────────────────────────────────
CACHE_DIR: Path = Path(_env("TX_CACHE_DIR", "cache"))


def get_sessions() -> list[str]:
    """Return configured session codes, current session first.

    ``TX_SESSIONS`` is a comma-separated list such as ``"89R,88R,87R"``.
    Blank entries are dropped and codes are uppercased.
    """
    sessions = [s.strip().upper() for s in _SESSIONS_RAW.split(",") if s.strip()]
    if not sessions:
        LOGGER.warning("TX_SESSIONS is empty, using 89R.")
        return ["89R"]
    return sessions
