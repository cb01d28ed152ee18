from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Callable, Protocol
from zoneinfo import ZoneInfo

from sim_expiry.config_store import ReminderSettingsStore, validate_alarm_time
from sim_expiry.models import PendingWakeUp

LOGGER = logging.getLogger(__name__)

DAILY_CHECK_JOB_NAME = "daily-sim-expiry-check"


class ExactTimingDeniedError(PermissionError):
    pass


class WakeUpTimer(Protocol):
    def arm(self, when: datetime, name: str, *, exact: bool) -> None: ...

    def disarm(self, name: str) -> None: ...


class Clock:
    """Wall clock in the configured timezone, or the device's own."""

    def __init__(self, timezone_provider: Callable[[], str | None] | None = None) -> None:
        self._timezone_provider = timezone_provider

    def timezone(self) -> tzinfo:
        name = self._timezone_provider() if self._timezone_provider else None
        if name:
            return ZoneInfo(name)
        return datetime.now().astimezone().tzinfo

    def now(self) -> datetime:
        return datetime.now(self.timezone())


def _at_time_of_day(day: date, hour: int, minute: int, tz: tzinfo | None) -> datetime:
    return datetime.combine(day, time(hour=hour, minute=minute), tzinfo=tz)


def next_fire_instant(now: datetime, hour: int, minute: int) -> datetime:
    validate_alarm_time(hour, minute)
    candidate = _at_time_of_day(now.date(), hour, minute, now.tzinfo)
    if candidate < now:
        candidate = _at_time_of_day(now.date() + timedelta(days=1), hour, minute, now.tzinfo)
    return candidate


def next_fire_after(fired_at: datetime, hour: int, minute: int) -> datetime:
    validate_alarm_time(hour, minute)
    return _at_time_of_day(fired_at.date() + timedelta(days=1), hour, minute, fired_at.tzinfo)


class ReminderScheduler:
    """Owns the single pending daily wake-up.

    Every mutation disarms the previous wake-up before arming the next one, so
    at most one job named ``DAILY_CHECK_JOB_NAME`` ever exists.
    """

    def __init__(
        self,
        *,
        timer: WakeUpTimer,
        clock: Clock,
        config_store: ReminderSettingsStore,
        job_name: str = DAILY_CHECK_JOB_NAME,
    ) -> None:
        self._timer = timer
        self._clock = clock
        self._config_store = config_store
        self._job_name = job_name
        self._lock = threading.Lock()
        self._pending: PendingWakeUp | None = None

    @property
    def pending(self) -> PendingWakeUp | None:
        return self._pending

    def _arm(self, fire_at: datetime) -> datetime:
        with self._lock:
            self._timer.disarm(self._job_name)
            self._pending = None

            warning: str | None = None
            exact = True
            try:
                self._timer.arm(fire_at, self._job_name, exact=True)
            except ExactTimingDeniedError:
                warning = "Exact reminder timing is not permitted; reminders may arrive a little late."
                LOGGER.warning("Exact wake-up denied, falling back to inexact timing for %s", fire_at.isoformat())
                self._timer.arm(fire_at, self._job_name, exact=False)
                exact = False

            self._pending = PendingWakeUp(fire_at=fire_at, exact=exact, warning=warning)

        LOGGER.info("Next SIM expiry check armed for %s (exact=%s)", fire_at.isoformat(), exact)
        return fire_at

    def schedule_daily(self, now: datetime, hour: int, minute: int) -> datetime:
        return self._arm(next_fire_instant(now, hour, minute))

    def rearm_after_fire(self, fired_at: datetime, hour: int, minute: int) -> datetime:
        return self._arm(next_fire_after(fired_at, hour, minute))

    def cancel(self) -> None:
        with self._lock:
            self._timer.disarm(self._job_name)
            self._pending = None
        LOGGER.info("Pending SIM expiry check cancelled")

    def reschedule_on_config_change(self, hour: int, minute: int) -> datetime:
        return self.schedule_daily(self._clock.now(), hour, minute)

    def reschedule_on_restart(self, now: datetime, hour: int, minute: int) -> datetime:
        return self.schedule_daily(now, hour, minute)

    def on_host_restart(self) -> datetime:
        hour, minute = self._config_store.get_alarm_time()
        LOGGER.info("Host restart: restoring daily check at %02d:%02d", hour, minute)
        return self.reschedule_on_restart(self._clock.now(), hour, minute)


def missed_check_due(now: datetime, last_check: date | None, hour: int, minute: int) -> bool:
    """True when today's check time has passed but no check ran today."""
    if last_check is not None and last_check >= now.date():
        return False
    return _at_time_of_day(now.date(), hour, minute, now.tzinfo) <= now
