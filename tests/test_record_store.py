from pathlib import Path

import pytest

from sim_expiry.date_logic import InvalidExpiryDateError
from sim_expiry.models import SimRecord
from sim_expiry.record_store import (
    DuplicateSimCardError,
    JsonRecordStore,
    RecordNotFoundError,
    StoreIOError,
    validate_entry,
)


def _new(name: str, number: str, expired_date: str) -> SimRecord:
    return SimRecord(id=0, name=name, sim_card_number=number, expired_date=expired_date)


def test_insert_assigns_increasing_ids(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "sims.json")

    first = store.insert(_new("Telkomsel", "0811", "2026-01-01"))
    second = store.insert(_new("XL", "0817", "2026-02-01"))

    assert (first, second) == (1, 2)
    assert [record.id for record in store.list_all()] == [1, 2]


def test_ids_are_not_reused_after_delete(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "sims.json")
    first = store.insert(_new("Telkomsel", "0811", "2026-01-01"))
    store.delete(store.get_by_id(first))

    assert store.insert(_new("XL", "0817", "2026-02-01")) == 2


def test_duplicate_sim_number_rejected(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "sims.json")
    store.insert(_new("Telkomsel", "0811", "2026-01-01"))

    with pytest.raises(DuplicateSimCardError):
        store.insert(_new("Other", "0811", "2026-03-01"))


def test_update_replaces_all_fields(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "sims.json")
    record_id = store.insert(_new("Telkomsel", "0811", "2026-01-01"))

    store.update(SimRecord(id=record_id, name="Tsel work", sim_card_number="0812", expired_date="2027-01-01"))

    assert store.get_by_id(record_id) == SimRecord(
        id=record_id, name="Tsel work", sim_card_number="0812", expired_date="2027-01-01"
    )


def test_update_missing_record(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "sims.json")

    with pytest.raises(RecordNotFoundError):
        store.update(SimRecord(id=9, name="x", sim_card_number="y", expired_date="2026-01-01"))


def test_corrupt_file_raises_store_io_error(tmp_path: Path) -> None:
    path = tmp_path / "sims.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StoreIOError):
        JsonRecordStore(path).list_all()


def test_validate_entry_normalizes_date() -> None:
    assert validate_entry(" Indosat ", " 0856 ", "2026-3-7") == ("Indosat", "0856", "2026-03-07")


def test_validate_entry_requires_all_fields() -> None:
    with pytest.raises(ValueError):
        validate_entry("Indosat", "  ", "2026-03-07")
    with pytest.raises(InvalidExpiryDateError):
        validate_entry("Indosat", "0856", "someday")
