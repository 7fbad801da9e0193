"""Append-only JSONL log of scrape runs.

Every scheduled or manual scrape appends one line: task name, start/end,
per-phase durations, status and run counts.  ``scripts/scrape.py --history``
and ``GET /scraper/status`` read it back.

Usage::

    from tx_senate_tracker.run_log import RunLogger

    with RunLogger("scrape", meta={"trigger": "manual"}) as log:
        with log.phase_ctx("Scrape"):
            ...
        with log.phase_ctx("Persist", detail="412 bills"):
            ...
    # On exit, the run is appended to .run_log.jsonl
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

LOGGER = logging.getLogger(__name__)

DEFAULT_LOG_PATH = Path(".run_log.jsonl")


def get_log_path() -> Path:
    """Run log location; ``TX_RUN_LOG`` overrides the default."""
    return Path(os.environ.get("TX_RUN_LOG", str(DEFAULT_LOG_PATH)))


@dataclass
class RunRecord:
    """One line in the run log."""

    run_id: str
    task: str
    started_at: str  # ISO
    ended_at: str | None = None
    duration_s: float | None = None
    status: str = "running"  # ok | error | running
    phases: list[dict] = field(default_factory=list)  # [{name, duration_s, detail}]
    error: str | None = None
    meta: dict = field(default_factory=dict)  # bills_processed, attempt, trigger, ...

    def to_json_line(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json_line(cls, line: str) -> RunRecord | None:
        line = line.strip()
        if not line:
            return None
        try:
            d = json.loads(line)
        except json.JSONDecodeError:
            return None
        if not isinstance(d, dict):
            return None
        return cls(
            run_id=d.get("run_id", ""),
            task=d.get("task", ""),
            started_at=d.get("started_at", ""),
            ended_at=d.get("ended_at"),
            duration_s=d.get("duration_s"),
            status=d.get("status", "ok"),
            phases=d.get("phases", []),
            error=d.get("error"),
            meta=d.get("meta", {}),
        )


class RunLogger:
    """Times one run and its phases; appends a :class:`RunRecord` on end."""

    def __init__(
        self,
        task: str,
        *,
        log_path: Path | None = None,
        meta: dict | None = None,
    ):
        self.task = task
        self.log_path = log_path if log_path is not None else get_log_path()
        self.meta = dict(meta or {})
        self.run_id = str(uuid.uuid4())[:8]
        self._started_at: str | None = None
        self._start_time: float | None = None
        self._phases: list[dict] = []
        self._status = "ok"
        self._error: str | None = None

    def start(self) -> None:
        self._started_at = datetime.now(timezone.utc).isoformat()
        self._start_time = time.perf_counter()
        self._phases = []
        self._status = "ok"
        self._error = None

    @contextmanager
    def phase_ctx(self, name: str, detail: str | None = None) -> Iterator[dict]:
        """Time a phase.  The yielded dict's ``detail`` may be set inside the block."""
        entry: dict = {"name": name, "duration_s": 0.0, "detail": detail}
        t0 = time.perf_counter()
        try:
            yield entry
        finally:
            entry["duration_s"] = round(time.perf_counter() - t0, 2)
            self._phases.append(entry)

    def fail(self, error: str) -> None:
        """Mark the run as errored without raising."""
        self._status = "error"
        self._error = error

    def end(self, status: str | None = None, error: str | None = None) -> RunRecord | None:
        if status is not None:
            self._status = status
        if error is not None:
            self._error = error
        return self._write()

    def _write(self) -> RunRecord | None:
        if self._start_time is None:
            return None
        ended_at = datetime.now(timezone.utc).isoformat()
        record = RunRecord(
            run_id=self.run_id,
            task=self.task,
            started_at=self._started_at or ended_at,
            ended_at=ended_at,
            duration_s=round(time.perf_counter() - self._start_time, 2),
            status=self._status,
            phases=self._phases,
            error=self._error,
            meta=self.meta,
        )
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(record.to_json_line() + "\n")
        except OSError as e:
            LOGGER.warning("Run log append failed: %s", e)
        return record

    def __enter__(self) -> RunLogger:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self._status = "error"
            self._error = f"{exc_type.__name__}: {exc_val}" if exc_val else exc_type.__name__
        self.end()
        return None  # do not suppress


def load_recent_runs(
    n: int = 100,
    *,
    task: str | None = None,
    log_path: Path | None = None,
) -> list[RunRecord]:
    """Last *n* runs, newest first, optionally filtered by task."""
    path = log_path or get_log_path()
    if not path.exists():
        return []
    records: list[RunRecord] = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            rec = RunRecord.from_json_line(line)
            if rec is None:
                continue
            if task is None or rec.task == task:
                records.append(rec)
    return records[-n:][::-1]
