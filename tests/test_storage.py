"""Tests for document stores and the bill repository."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from tx_senate_tracker.errors import ValidationError
from tx_senate_tracker.models import BillRecord, BillStatus
from tx_senate_tracker.storage import BillRepository, InMemoryStore, JsonFileStore


class TestInMemoryStore:
    def test_upsert_and_get_copy(self) -> None:
        store = InMemoryStore()
        doc = {"id": "SB1", "status": "Filed"}
        store.upsert("bills", "SB1", doc)
        doc["status"] = "Signed"
        assert store.get("bills", "SB1") == {"id": "SB1", "status": "Filed"}
        assert store.get("bills", "SB2") is None
        assert store.get("other", "SB1") is None

    def test_query_operators(self) -> None:
        store = InMemoryStore()
        store.upsert("bills", "SB1", {"id": "SB1", "status": "Filed", "topics": ["General"]})
        store.upsert("bills", "SB2", {"id": "SB2", "status": "Signed", "topics": ["Education"]})

        def ids(op: str, field: str, value: object) -> list[str]:
            return sorted(d["id"] for d in store.query_by_field("bills", field, op, value))  # type: ignore[arg-type]

        assert ids("==", "status", "Signed") == ["SB2"]
        assert ids("!=", "status", "Signed") == ["SB1"]
        assert ids("in", "status", ["Filed", "Signed"]) == ["SB1", "SB2"]
        assert ids("array-contains", "topics", "Education") == ["SB2"]

    def test_unknown_operator(self) -> None:
        store = InMemoryStore()
        store.upsert("bills", "SB1", {"id": "SB1"})
        with pytest.raises(ValueError, match="Unsupported query operator"):
            store.query_by_field("bills", "id", ">", "SB0")  # type: ignore[arg-type]

    def test_limit(self) -> None:
        store = InMemoryStore()
        for n in range(5):
            store.upsert("bills", f"SB{n}", {"id": f"SB{n}", "status": "Filed"})
        assert len(store.list_all("bills", limit=2)) == 2
        assert len(store.query_by_field("bills", "status", "==", "Filed", limit=3)) == 3


class TestJsonFileStore:
    def test_persists_across_instances(self, tmp_path: Path) -> None:
        JsonFileStore(tmp_path).upsert("bills", "SB1", {"id": "SB1", "status": "Filed"})
        reopened = JsonFileStore(tmp_path)
        assert reopened.get("bills", "SB1") == {"id": "SB1", "status": "Filed"}
        assert (tmp_path / "bills.json").exists()
        assert not (tmp_path / "bills.json.tmp").exists()

    def test_missing_collection(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path / "nested")
        assert store.get("bills", "SB1") is None
        assert store.list_all("bills") == []

    def test_query(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path)
        store.upsert("bills", "SB1", {"id": "SB1", "status": "Filed"})
        store.upsert("bills", "SB2", {"id": "SB2", "status": "Signed"})
        hits = store.query_by_field("bills", "status", "==", "Signed")
        assert [h["id"] for h in hits] == ["SB2"]


class TestBillRepository:
    def test_create_then_update(self, repository: BillRepository, sample_record: BillRecord) -> None:
        assert repository.save_bill(sample_record) == "created"
        sample_record.status = BillStatus.EFFECTIVE
        assert repository.save_bill(sample_record) == "updated"
        assert len(repository.list_bills()) == 1
        assert repository.get_bill("SB22").status is BillStatus.EFFECTIVE  # type: ignore[union-attr]

    def test_saved_document_shape(self, repository: BillRepository, sample_record: BillRecord) -> None:
        repository.save_bill(sample_record)
        doc = repository.store.get("bills", "SB22")
        assert doc is not None
        assert doc["billNumber"] == "SB 22"
        assert doc["status"] == "Signed"
        assert doc["sponsors"][0]["name"] == "Hughes"
        assert doc["lastUpdated"]

    def test_non_canonical_id_is_standardized(
        self, repository: BillRepository, sample_record: BillRecord
    ) -> None:
        sample_record.id = "sb 22"
        repository.save_bill(sample_record)
        assert repository.store.get("bills", "SB22") is not None

    def test_invalid_id_rejected(self, repository: BillRepository, sample_record: BillRecord) -> None:
        sample_record.id = "XB 1"
        with pytest.raises(ValidationError):
            repository.save_bill(sample_record)

    @pytest.mark.parametrize("raw", ["SB22", "sb 22", "Senate Bill 22", "S.B. 22"])
    def test_get_by_any_spelling(
        self, repository: BillRepository, sample_record: BillRecord, raw: str
    ) -> None:
        repository.save_bill(sample_record)
        bill = repository.get_bill(raw)
        assert bill is not None
        assert bill.id == "SB22"

    def test_legacy_key_found(self, repository: BillRepository, sample_record: BillRecord) -> None:
        doc = sample_record.to_dict()
        doc["id"] = "SB 22"
        repository.store.upsert("bills", "SB 22", doc)
        bill = repository.get_bill("SB22")
        assert bill is not None
        assert bill.id == "SB22"

    def test_missing_and_invalid(self, repository: BillRepository) -> None:
        assert repository.get_bill("SB999") is None
        assert repository.get_bill("garbage") is None

    def test_bills_by_status(self, repository: BillRepository, sample_record: BillRecord) -> None:
        repository.save_bill(sample_record)
        other = BillRecord(id="SB1", short_title="Budget", full_title="Budget.")
        repository.save_bill(other)
        assert [b.id for b in repository.bills_by_status(BillStatus.SIGNED)] == ["SB22"]
        assert [b.id for b in repository.bills_by_status("Filed")] == ["SB1"]

    def test_malformed_stored_document_is_logged(self, repository: BillRepository) -> None:
        repository.store.upsert("bills", "SB3", {"id": "SB3", "status": "Filed", "topics": "Tax"})
        with patch("tx_senate_tracker.storage.LOGGER") as logger:
            bill = repository.get_bill("SB3")
            repository.list_bills()
        assert bill is not None
        messages = [call.args[2] for call in logger.warning.call_args_list]
        assert any("shortTitle" in m for m in messages)
        assert any("'topics' must be a list" in m for m in messages)

    def test_well_formed_documents_log_nothing(
        self, repository: BillRepository, sample_record: BillRecord
    ) -> None:
        repository.save_bill(sample_record)
        with patch("tx_senate_tracker.storage.LOGGER") as logger:
            repository.list_bills()
        logger.warning.assert_not_called()
