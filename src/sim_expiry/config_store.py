from __future__ import annotations

import logging
import threading
import tomllib
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sim_expiry.models import (
    DEFAULT_ALARM_HOUR,
    DEFAULT_ALARM_MINUTE,
    DEFAULT_REMINDER_DAYS,
    MAX_REMINDER_DAYS,
    MIN_REMINDER_DAYS,
    ReminderConfig,
)
from sim_expiry.storage import write_text_atomic

LOGGER = logging.getLogger(__name__)


class InvalidConfigInputError(ValueError):
    pass


def _toml_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def parse_time_string(value: str) -> tuple[int, int]:
    pieces = value.strip().split(":")
    if len(pieces) != 2:
        raise InvalidConfigInputError("Time must be in HH:MM format")

    hour, minute = pieces
    if not hour.isdigit() or not minute.isdigit():
        raise InvalidConfigInputError("Time must contain numeric hour/minute")

    hour_i = int(hour)
    minute_i = int(minute)
    validate_alarm_time(hour_i, minute_i)
    return hour_i, minute_i


def validate_alarm_time(hour: int, minute: int) -> None:
    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        raise InvalidConfigInputError(f"Not a valid 24-hour time: {hour}:{minute}")


def clamp_reminder_days(days: int) -> int:
    return max(MIN_REMINDER_DAYS, min(MAX_REMINDER_DAYS, days))


def validate_timezone(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise InvalidConfigInputError("timezone must not be empty")
    try:
        ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidConfigInputError(f"Unknown timezone: {cleaned}") from exc
    return cleaned


def _coerce_config(data: dict[str, Any]) -> ReminderConfig:
    hour = data.get("alarm_hour", DEFAULT_ALARM_HOUR)
    minute = data.get("alarm_minute", DEFAULT_ALARM_MINUTE)
    try:
        hour, minute = int(hour), int(minute)
        validate_alarm_time(hour, minute)
    except (TypeError, ValueError):
        LOGGER.warning("Stored alarm time %r:%r is invalid, using default", hour, minute)
        hour, minute = DEFAULT_ALARM_HOUR, DEFAULT_ALARM_MINUTE

    try:
        days = clamp_reminder_days(int(data.get("reminder_days", DEFAULT_REMINDER_DAYS)))
    except (TypeError, ValueError):
        LOGGER.warning("Stored reminder_days is invalid, using default")
        days = DEFAULT_REMINDER_DAYS

    timezone = data.get("timezone")
    if timezone is not None:
        try:
            timezone = validate_timezone(str(timezone))
        except InvalidConfigInputError:
            LOGGER.warning("Stored timezone %r is unknown, using device timezone", timezone)
            timezone = None

    return ReminderConfig(alarm_hour=hour, alarm_minute=minute, reminder_days=days, timezone=timezone)


def render_config(config: ReminderConfig) -> str:
    lines = [
        f"alarm_hour = {config.alarm_hour}",
        f"alarm_minute = {config.alarm_minute}",
        f"reminder_days = {config.reminder_days}",
    ]
    if config.timezone is not None:
        lines.append(f'timezone = "{_toml_escape(config.timezone)}"')
    return "\n".join(lines) + "\n"


class ReminderSettingsStore:
    """Persisted alarm time and reminder window.

    Reads fall back to 07:00 and 7 days when nothing has been saved yet.
    Writes go through a lock so concurrent setters cannot lose each other's
    update.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ReminderConfig:
        if not self._path.exists():
            return ReminderConfig()

        with self._path.open("rb") as file_obj:
            data = tomllib.load(file_obj)
        return _coerce_config(data)

    def _save(self, config: ReminderConfig) -> None:
        write_text_atomic(self._path, render_config(config))

    def get_alarm_time(self) -> tuple[int, int]:
        config = self.load()
        return config.alarm_hour, config.alarm_minute

    def get_reminder_window_days(self) -> int:
        return self.load().reminder_days

    def set_alarm_time(self, hour: int, minute: int) -> None:
        validate_alarm_time(hour, minute)
        with self._lock:
            current = self.load()
            self._save(
                ReminderConfig(
                    alarm_hour=hour,
                    alarm_minute=minute,
                    reminder_days=current.reminder_days,
                    timezone=current.timezone,
                )
            )
        LOGGER.info("Alarm time set to %02d:%02d", hour, minute)

    def set_reminder_window_days(self, days: int) -> int:
        safe = clamp_reminder_days(int(days))
        with self._lock:
            current = self.load()
            self._save(
                ReminderConfig(
                    alarm_hour=current.alarm_hour,
                    alarm_minute=current.alarm_minute,
                    reminder_days=safe,
                    timezone=current.timezone,
                )
            )
        LOGGER.info("Reminder window set to %s days", safe)
        return safe

    def set_timezone(self, name: str) -> str:
        timezone = validate_timezone(name)
        with self._lock:
            current = self.load()
            self._save(
                ReminderConfig(
                    alarm_hour=current.alarm_hour,
                    alarm_minute=current.alarm_minute,
                    reminder_days=current.reminder_days,
                    timezone=timezone,
                )
            )
        LOGGER.info("Timezone set to %s", timezone)
        return timezone
