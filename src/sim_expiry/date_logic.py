from __future__ import annotations

import logging
import re
from datetime import date
from typing import Iterable

from sim_expiry.models import ExpiryBuckets, SimRecord

LOGGER = logging.getLogger(__name__)

_LOOSE_DATE = re.compile(r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})")


class InvalidExpiryDateError(ValueError):
    pass


def normalize_date_string(value: str) -> str:
    """Zero-pad a ``YYYY-M-D`` style date to ``YYYY-MM-DD``.

    Strings that do not look like a numeric year-month-day are returned
    stripped but otherwise untouched, so normalising twice is a no-op.
    """
    text = value.strip()
    match = _LOOSE_DATE.fullmatch(text)
    if match is None:
        return text

    year, month, day = match.groups()
    return f"{int(year):04d}-{int(month):02d}-{int(day):02d}"


def parse_expiry_date(value: str) -> date:
    normalized = normalize_date_string(value)
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", normalized):
        raise InvalidExpiryDateError(f"Unrecognised date: {value!r}")

    try:
        return date.fromisoformat(normalized)
    except ValueError as exc:
        raise InvalidExpiryDateError(f"Invalid date: {value!r}") from exc


def days_until_expiry(expiry: date, today: date) -> int:
    return (expiry - today).days


def classify(today: date, records: Iterable[SimRecord], window_days: int) -> ExpiryBuckets:
    expired: list[SimRecord] = []
    expiring_soon: list[SimRecord] = []
    ok: list[SimRecord] = []

    for record in records:
        try:
            expiry = parse_expiry_date(record.expired_date)
        except InvalidExpiryDateError:
            LOGGER.warning(
                "Skipping SIM %s (id=%s): unparseable expiry date %r",
                record.name,
                record.id,
                record.expired_date,
            )
            continue

        days = days_until_expiry(expiry, today)
        if days < 0:
            expired.append(record)
        elif days <= window_days:
            expiring_soon.append(record)
        else:
            ok.append(record)

    return ExpiryBuckets(expired=expired, expiring_soon=expiring_soon, ok=ok)
