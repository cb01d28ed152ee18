from __future__ import annotations

import dataclasses
import json
import logging
import threading
from pathlib import Path
from typing import Any

from sim_expiry.date_logic import normalize_date_string, parse_expiry_date
from sim_expiry.models import SimRecord
from sim_expiry.storage import read_json, write_json_atomic

LOGGER = logging.getLogger(__name__)


class StoreIOError(RuntimeError):
    pass


class DuplicateSimCardError(ValueError):
    pass


class RecordNotFoundError(KeyError):
    pass


def validate_entry(name: str, sim_card_number: str, expired_date: str) -> tuple[str, str, str]:
    cleaned_name = name.strip()
    cleaned_number = sim_card_number.strip()
    cleaned_date = expired_date.strip()
    if not cleaned_name or not cleaned_number or not cleaned_date:
        raise ValueError("Name, SIM number and expiry date must all be filled in")

    parse_expiry_date(cleaned_date)
    return cleaned_name, cleaned_number, normalize_date_string(cleaned_date)


class JsonRecordStore:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    def _load(self) -> tuple[int, list[SimRecord]]:
        try:
            data = read_json(self._path, {"next_id": 1, "records": []})
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreIOError(f"Could not read SIM records from {self._path}") from exc

        try:
            records = [
                SimRecord(
                    id=int(row["id"]),
                    name=str(row["name"]),
                    sim_card_number=str(row["sim_card_number"]),
                    expired_date=str(row["expired_date"]),
                )
                for row in data.get("records", [])
            ]
            next_id = int(data.get("next_id", 1))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise StoreIOError(f"Malformed SIM record file: {self._path}") from exc

        if records:
            next_id = max(next_id, max(record.id for record in records) + 1)
        records.sort(key=lambda record: record.id)
        return next_id, records

    def _save(self, next_id: int, records: list[SimRecord]) -> None:
        payload: dict[str, Any] = {
            "next_id": next_id,
            "records": [dataclasses.asdict(record) for record in sorted(records, key=lambda r: r.id)],
        }
        try:
            write_json_atomic(self._path, payload)
        except OSError as exc:
            raise StoreIOError(f"Could not write SIM records to {self._path}") from exc

    @staticmethod
    def _check_unique(records: list[SimRecord], candidate: SimRecord) -> None:
        for record in records:
            if record.id != candidate.id and record.sim_card_number == candidate.sim_card_number:
                raise DuplicateSimCardError(
                    f"SIM number {candidate.sim_card_number} is already tracked as #{record.id}"
                )

    def insert(self, record: SimRecord) -> int:
        """Store a new record and return the id assigned to it.

        Any id on the incoming record is ignored.
        """
        with self._lock:
            next_id, records = self._load()
            created = dataclasses.replace(record, id=next_id)
            self._check_unique(records, created)
            records.append(created)
            self._save(next_id + 1, records)

        LOGGER.info("Inserted SIM %s as #%s", created.name, created.id)
        return created.id

    def update(self, record: SimRecord) -> None:
        with self._lock:
            next_id, records = self._load()
            positions = [index for index, existing in enumerate(records) if existing.id == record.id]
            if not positions:
                raise RecordNotFoundError(record.id)
            self._check_unique(records, record)
            records[positions[0]] = record
            self._save(next_id, records)

        LOGGER.info("Updated SIM #%s", record.id)

    def delete(self, record: SimRecord) -> None:
        with self._lock:
            next_id, records = self._load()
            remaining = [existing for existing in records if existing.id != record.id]
            if len(remaining) == len(records):
                LOGGER.debug("Delete of unknown SIM #%s ignored", record.id)
                return
            self._save(next_id, remaining)

        LOGGER.info("Deleted SIM #%s", record.id)

    def list_all(self) -> list[SimRecord]:
        _next_id, records = self._load()
        return records

    def get_by_id(self, record_id: int) -> SimRecord | None:
        for record in self.list_all():
            if record.id == record_id:
                return record
        return None

