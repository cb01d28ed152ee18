from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime


DEFAULT_ALARM_HOUR = 7
DEFAULT_ALARM_MINUTE = 0
DEFAULT_REMINDER_DAYS = 7
MIN_REMINDER_DAYS = 1
MAX_REMINDER_DAYS = 365


@dataclass(frozen=True)
class SimRecord:
    id: int
    name: str
    sim_card_number: str
    expired_date: str


@dataclass(frozen=True)
class ReminderConfig:
    alarm_hour: int = DEFAULT_ALARM_HOUR
    alarm_minute: int = DEFAULT_ALARM_MINUTE
    reminder_days: int = DEFAULT_REMINDER_DAYS
    timezone: str | None = None


@dataclass(frozen=True)
class ExpiryBuckets:
    expired: list[SimRecord] = field(default_factory=list)
    expiring_soon: list[SimRecord] = field(default_factory=list)
    ok: list[SimRecord] = field(default_factory=list)


@dataclass(frozen=True)
class NotificationEvent:
    key: str
    title: str
    body: str
    record_ids: tuple[int, ...]


@dataclass(frozen=True)
class PendingWakeUp:
    fire_at: datetime
    exact: bool
    warning: str | None = None


@dataclass(frozen=True)
class CheckResult:
    today: date
    buckets: ExpiryBuckets
    events: list[NotificationEvent]
