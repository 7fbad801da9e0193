"""Document storage for bill records.

The tracker writes to a generic collection/id document store.  Production
deployments plug in their own backend behind :class:`DocumentStore`; two
reference stores ship here:

- :class:`InMemoryStore` for tests and throwaway dev runs
- :class:`JsonFileStore`, one ``{collection}.json`` file per collection,
  written atomically through a ``.json.tmp`` sibling

:class:`BillRepository` is the only code that knows how bills are keyed.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Literal, Protocol

from .config import CACHE_DIR
from .errors import ValidationError
from .identifiers import generate_lookup_variants, standardize
from .models import BillRecord, BillStatus, utc_now_iso
from .normalize import validate_bill_dict

LOGGER = logging.getLogger(__name__)

QueryOp = Literal["==", "!=", "in", "array-contains"]
SaveOutcome = Literal["created", "updated"]


class DocumentStore(Protocol):
    def get(self, collection: str, doc_id: str) -> dict | None: ...

    def upsert(self, collection: str, doc_id: str, data: dict) -> None: ...

    def query_by_field(
        self,
        collection: str,
        field: str,
        op: QueryOp,
        value: Any,
        limit: int | None = None,
    ) -> list[dict]: ...

    def list_all(self, collection: str, limit: int | None = None) -> list[dict]: ...


def _matches(doc: dict, field: str, op: str, value: Any) -> bool:
    actual = doc.get(field)
    if op == "==":
        return actual == value
    if op == "!=":
        return actual != value
    if op == "in":
        return actual in value
    if op == "array-contains":
        return isinstance(actual, list) and value in actual
    raise ValueError(f"Unsupported query operator: {op!r}")


# ── Reference stores ─────────────────────────────────────────────────────────


class InMemoryStore:
    """Dict-of-dicts store.  Documents are copied in and out."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: dict[str, dict[str, dict]] = {}

    def get(self, collection: str, doc_id: str) -> dict | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def upsert(self, collection: str, doc_id: str, data: dict) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def query_by_field(
        self,
        collection: str,
        field: str,
        op: QueryOp,
        value: Any,
        limit: int | None = None,
    ) -> list[dict]:
        with self._lock:
            docs = list(self._collections.get(collection, {}).values())
        hits = [copy.deepcopy(d) for d in docs if _matches(d, field, op, value)]
        return hits[:limit] if limit else hits

    def list_all(self, collection: str, limit: int | None = None) -> list[dict]:
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()]
        return docs[:limit] if limit else docs


class JsonFileStore:
    """One JSON object per collection under *root*, keyed by document id."""

    def __init__(self, root: Path | str = CACHE_DIR / "store") -> None:
        self.root = Path(root)
        self._lock = threading.Lock()

    def _path(self, collection: str) -> Path:
        return self.root / f"{collection}.json"

    def _load(self, collection: str) -> dict[str, dict]:
        path = self._path(collection)
        if not path.exists():
            return {}
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def _save(self, collection: str, data: dict[str, dict]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(collection)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(path)

    def get(self, collection: str, doc_id: str) -> dict | None:
        with self._lock:
            return self._load(collection).get(doc_id)

    def upsert(self, collection: str, doc_id: str, data: dict) -> None:
        with self._lock:
            docs = self._load(collection)
            docs[doc_id] = data
            self._save(collection, docs)

    def query_by_field(
        self,
        collection: str,
        field: str,
        op: QueryOp,
        value: Any,
        limit: int | None = None,
    ) -> list[dict]:
        with self._lock:
            docs = list(self._load(collection).values())
        hits = [d for d in docs if _matches(d, field, op, value)]
        return hits[:limit] if limit else hits

    def list_all(self, collection: str, limit: int | None = None) -> list[dict]:
        with self._lock:
            docs = list(self._load(collection).values())
        return docs[:limit] if limit else docs


# ── Bill repository ──────────────────────────────────────────────────────────


class BillRepository:
    """Read and write :class:`BillRecord` documents keyed by canonical id."""

    def __init__(self, store: DocumentStore, collection: str = "bills"):
        self.store = store
        self.collection = collection

    def _to_record(self, doc: dict) -> BillRecord:
        for warning in validate_bill_dict(doc):
            LOGGER.warning("Stored %s: %s", self.collection, warning)
        return BillRecord.from_dict(doc)

    def save_bill(self, record: BillRecord) -> SaveOutcome:
        """Upsert *record* under its canonical id and stamp ``lastUpdated``.

        Returns ``"created"`` for a new id, ``"updated"`` otherwise.
        """
        bill_id = standardize(record.id)
        if bill_id is None:
            raise ValidationError(f"Cannot store bill with invalid id {record.id!r}")
        record.id = bill_id
        record.last_updated = utc_now_iso()

        existed = self.store.get(self.collection, bill_id) is not None
        self.store.upsert(self.collection, bill_id, record.to_dict())
        return "updated" if existed else "created"

    def get_bill(self, raw_id: object) -> BillRecord | None:
        """Find a bill by any spelling of its id, including legacy keys."""
        bill_id = standardize(raw_id)
        if bill_id is None:
            return None
        doc = self.store.get(self.collection, bill_id)
        if doc is None:
            for variant in sorted(generate_lookup_variants(raw_id) - {bill_id}):
                doc = self.store.get(self.collection, variant)
                if doc is not None:
                    LOGGER.info("Found %s under legacy key %r", bill_id, variant)
                    break
        if doc is None:
            return None
        record = self._to_record(doc)
        record.id = bill_id
        return record

    def bills_by_status(self, status: BillStatus | str, limit: int | None = None) -> list[BillRecord]:
        value = BillStatus.coerce(status).value
        docs = self.store.query_by_field(self.collection, "status", "==", value, limit)
        return [self._to_record(d) for d in docs]

    def list_bills(self, limit: int | None = None) -> list[BillRecord]:
        return [self._to_record(d) for d in self.store.list_all(self.collection, limit)]
