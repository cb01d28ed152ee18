from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from sim_expiry.storage import read_json, write_json_atomic


@dataclass(frozen=True)
class ActiveNotification:
    title: str
    body: str
    record_ids: tuple[int, ...]


@dataclass
class NotificationState:
    active: dict[str, ActiveNotification] = field(default_factory=dict)
    last_check: str | None = None

    def last_check_date(self) -> date | None:
        if self.last_check is None:
            return None
        try:
            return date.fromisoformat(self.last_check)
        except ValueError:
            return None


def load_state(path: Path) -> NotificationState:
    data = read_json(path, {})

    active: dict[str, ActiveNotification] = {}
    for key, value in data.get("active", {}).items():
        if not isinstance(value, dict):
            continue
        active[str(key)] = ActiveNotification(
            title=str(value.get("title", "")),
            body=str(value.get("body", "")),
            record_ids=tuple(int(v) for v in value.get("record_ids", [])),
        )

    last_check = data.get("last_check")
    return NotificationState(active=active, last_check=str(last_check) if last_check else None)


def save_state_atomic(path: Path, state: NotificationState) -> None:
    payload = {
        "active": {
            key: {
                "title": item.title,
                "body": item.body,
                "record_ids": list(item.record_ids),
            }
            for key, item in state.active.items()
        },
        "last_check": state.last_check,
    }
    write_json_atomic(path, payload)


def record_key(record_id: int) -> str:
    return f"sim-{record_id}"
