from __future__ import annotations

import enum
import logging
from datetime import date
from pathlib import Path
from typing import Protocol

from sim_expiry.date_logic import days_until_expiry, normalize_date_string, parse_expiry_date
from sim_expiry.models import NotificationEvent, SimRecord
from sim_expiry.notification_state import ActiveNotification, load_state, record_key, save_state_atomic

LOGGER = logging.getLogger(__name__)

EXPIRED_TITLE = "Expired SIM Alert"
EXPIRING_TITLE = "SIM Expiry Warning"
AGGREGATE_EXPIRED_KEY = "aggregate-expired"
AGGREGATE_EXPIRING_KEY = "aggregate-expiring"


class NotificationCapability(enum.Enum):
    GRANTED = "granted"
    DENIED = "denied"
    NOT_ASKED = "not_asked"


class NotificationDeniedError(PermissionError):
    pass


class NotificationDeliveryError(RuntimeError):
    pass


class NotificationSurface(Protocol):
    def capability(self) -> NotificationCapability: ...

    async def show(self, key: str, title: str, body: str) -> None: ...

    async def cancel(self, key: str) -> None: ...


def _describe(record: SimRecord) -> str:
    return f"SIM {record.name} ({record.sim_card_number})"


def _expired_line(record: SimRecord) -> str:
    return f"{_describe(record)} expired on {normalize_date_string(record.expired_date)}."


def _expiring_line(record: SimRecord, today: date) -> str:
    expiry = parse_expiry_date(record.expired_date)
    days_left = days_until_expiry(expiry, today)
    if days_left == 0:
        return f"{_describe(record)} expires today ({expiry.isoformat()})!"
    return f"{_describe(record)} will expire in {days_left} day(s) on {expiry.isoformat()}."


def build_events(
    expired: list[SimRecord],
    expiring_soon: list[SimRecord],
    *,
    today: date,
    window_days: int,
) -> list[NotificationEvent]:
    total = len(expired) + len(expiring_soon)
    if total == 0:
        return []

    if total == 1:
        if expired:
            record = expired[0]
            title, body = EXPIRED_TITLE, _expired_line(record)
        else:
            record = expiring_soon[0]
            title, body = EXPIRING_TITLE, _expiring_line(record, today)
        return [NotificationEvent(key=record_key(record.id), title=title, body=body, record_ids=(record.id,))]

    events: list[NotificationEvent] = []
    if expired:
        summary = f"{len(expired)} SIM cards have already expired."
        details = [_expired_line(record) for record in expired]
        events.append(
            NotificationEvent(
                key=AGGREGATE_EXPIRED_KEY,
                title=EXPIRED_TITLE,
                body="\n".join([summary, *details]),
                record_ids=tuple(record.id for record in expired),
            )
        )
    if expiring_soon:
        summary = f"{len(expiring_soon)} SIM cards are expiring within {window_days} days."
        details = [_expiring_line(record, today) for record in expiring_soon]
        events.append(
            NotificationEvent(
                key=AGGREGATE_EXPIRING_KEY,
                title=EXPIRING_TITLE,
                body="\n".join([summary, *details]),
                record_ids=tuple(record.id for record in expiring_soon),
            )
        )
    return events


class NotificationDispatcher:
    """Shows at most one notification per key and cancels keys that went stale.

    The set of active keys is persisted so that a restart does not lose track
    of what is still on screen.
    """

    def __init__(self, *, surface: NotificationSurface, state_path: Path) -> None:
        self._surface = surface
        self._state_path = state_path

    @property
    def state_path(self) -> Path:
        return self._state_path

    async def dispatch(
        self,
        expired: list[SimRecord],
        expiring_soon: list[SimRecord],
        *,
        today: date,
        window_days: int,
    ) -> list[NotificationEvent]:
        events = build_events(expired, expiring_soon, today=today, window_days=window_days)

        capability = self._surface.capability()
        if capability is not NotificationCapability.GRANTED:
            LOGGER.warning("Notifications not permitted (%s), skipping %s event(s)", capability.value, len(events))
            return events

        state = load_state(self._state_path)
        wanted = {event.key for event in events}

        try:
            for key in sorted(set(state.active) - wanted):
                await self._surface.cancel(key)
                del state.active[key]
                LOGGER.info("Cancelled stale notification %s", key)

            for event in events:
                previous = state.active.get(event.key)
                if previous is not None and previous.title == event.title and previous.body == event.body:
                    LOGGER.debug("Notification %s unchanged", event.key)
                    continue
                await self._surface.show(event.key, event.title, event.body)
                state.active[event.key] = ActiveNotification(
                    title=event.title,
                    body=event.body,
                    record_ids=event.record_ids,
                )
                LOGGER.info("Posted notification %s covering %s SIM(s)", event.key, len(event.record_ids))
        except NotificationDeniedError:
            LOGGER.warning("Notification surface refused delivery; reminders will not be shown")
        except NotificationDeliveryError:
            LOGGER.exception("Delivering notifications failed; the next check will try again")
        finally:
            save_state_atomic(self._state_path, state)

        return events

    async def cancel_record(self, record_id: int) -> None:
        """Drop the per-record notification of a SIM that was deleted."""
        key = record_key(record_id)
        state = load_state(self._state_path)
        if key not in state.active:
            return
        try:
            await self._surface.cancel(key)
        except (NotificationDeniedError, NotificationDeliveryError):
            LOGGER.exception("Could not cancel notification %s", key)
            return
        del state.active[key]
        save_state_atomic(self._state_path, state)
        LOGGER.info("Cancelled notification %s", key)
