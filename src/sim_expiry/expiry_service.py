from __future__ import annotations

import logging
from datetime import date

from sim_expiry.config_store import ReminderSettingsStore
from sim_expiry.date_logic import classify
from sim_expiry.models import CheckResult
from sim_expiry.notification_state import load_state, save_state_atomic
from sim_expiry.notifications import NotificationDispatcher
from sim_expiry.record_store import JsonRecordStore, StoreIOError

LOGGER = logging.getLogger(__name__)


class ExpiryCheckService:
    def __init__(
        self,
        *,
        store: JsonRecordStore,
        config_store: ReminderSettingsStore,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self._store = store
        self._config_store = config_store
        self._dispatcher = dispatcher

    async def run_check(self, today: date) -> CheckResult | None:
        """Run one daily check for ``today``.

        Returns ``None`` when the record store could not be read; nothing is
        sent in that case and the next scheduled check proceeds as usual.
        """
        try:
            records = self._store.list_all()
        except StoreIOError:
            LOGGER.exception("SIM expiry check for %s abandoned: record store unavailable", today.isoformat())
            return None

        window_days = self._config_store.get_reminder_window_days()
        buckets = classify(today, records, window_days)
        events = await self._dispatcher.dispatch(
            buckets.expired,
            buckets.expiring_soon,
            today=today,
            window_days=window_days,
        )

        state = load_state(self._dispatcher.state_path)
        state.last_check = today.isoformat()
        save_state_atomic(self._dispatcher.state_path, state)

        LOGGER.info(
            "SIM expiry check for %s: %s expired, %s expiring within %s days, %s ok, %s notification(s)",
            today.isoformat(),
            len(buckets.expired),
            len(buckets.expiring_soon),
            window_days,
            len(buckets.ok),
            len(events),
        )
        return CheckResult(today=today, buckets=buckets, events=events)

    def last_check_date(self) -> date | None:
        return load_state(self._dispatcher.state_path).last_check_date()
