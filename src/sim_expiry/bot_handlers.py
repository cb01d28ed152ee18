from __future__ import annotations

import logging
from dataclasses import dataclass

from telegram import Update
from telegram.ext import CallbackContext, CommandHandler

from sim_expiry.config_store import InvalidConfigInputError, ReminderSettingsStore, parse_time_string
from sim_expiry.date_logic import InvalidExpiryDateError, days_until_expiry, parse_expiry_date
from sim_expiry.expiry_service import ExpiryCheckService
from sim_expiry.models import SimRecord
from sim_expiry.notifications import NotificationDispatcher
from sim_expiry.record_store import (
    DuplicateSimCardError,
    JsonRecordStore,
    RecordNotFoundError,
    StoreIOError,
    validate_entry,
)
from sim_expiry.scheduler import Clock, ReminderScheduler
from sim_expiry.settings import Settings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerDependencies:
    settings: Settings
    store: JsonRecordStore
    config_store: ReminderSettingsStore
    scheduler: ReminderScheduler
    check_service: ExpiryCheckService
    dispatcher: NotificationDispatcher
    clock: Clock


@dataclass(frozen=True)
class SimListRow:
    record_id: int
    name: str
    sim_card_number: str
    expired_date: str
    days_until: int | None


def is_authorized(update: Update, settings: Settings) -> bool:
    effective_user = update.effective_user
    effective_chat = update.effective_chat
    if effective_user is None or effective_chat is None:
        return False
    return (
        effective_user.id == settings.telegram_allowed_user_id
        and effective_chat.id == settings.telegram_allowed_chat_id
    )


async def _deny_unauthorized(update: Update) -> None:
    if update.effective_message:
        await update.effective_message.reply_text("This bot is restricted to its configured owner.")


def parse_fields(raw_text: str, expected: int) -> list[str]:
    fields = [piece.strip() for piece in raw_text.split("|")]
    if len(fields) != expected or any(not field for field in fields):
        raise ValueError(f"Expected {expected} values separated by |")
    return fields


def parse_record_id(raw_text: str) -> int:
    cleaned = raw_text.strip().lstrip("#")
    if not cleaned.isdigit():
        raise ValueError("SIM id must be a number")
    return int(cleaned)


def _format_days(days_until: int | None) -> str:
    if days_until is None:
        return "invalid date"
    if days_until < 0:
        return f"expired {-days_until}d ago"
    if days_until == 0:
        return "expires today"
    return f"in {days_until}d"


def _render_list_message(rows: list[SimListRow]) -> str:
    lines = [f"Tracked SIM cards ({len(rows)})"]
    for row in rows:
        lines.append(f"#{row.record_id} {row.name} ({row.sim_card_number})")
        lines.append(f"   Expires {row.expired_date} | {_format_days(row.days_until)}")
    return "\n".join(lines)


def _render_help() -> str:
    return (
        "Commands:\n"
        "/list - Show tracked SIM cards\n"
        "/add name | number | YYYY-MM-DD - Track a new SIM card\n"
        "/edit id | name | number | YYYY-MM-DD - Replace a SIM card's details\n"
        "/delete id - Stop tracking a SIM card\n"
        "/settime HH:MM - Set the daily reminder time\n"
        "/setdays N - Remind N days before expiry (1-365)\n"
        "/settz Area/City - Set the timezone used for reminders\n"
        "/check - Run the expiry check now\n"
        "/help - Show this help message"
    )


def _command_text(context: CallbackContext) -> str:
    return " ".join(context.args or [])


async def _guard(update: Update, context: CallbackContext) -> HandlerDependencies | None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return None
    return deps


async def help_command(update: Update, context: CallbackContext) -> None:
    if await _guard(update, context) is None:
        return
    await update.effective_message.reply_text(_render_help())


async def list_command(update: Update, context: CallbackContext) -> None:
    deps = await _guard(update, context)
    if deps is None:
        return

    try:
        records = deps.store.list_all()
    except StoreIOError:
        LOGGER.exception("Listing SIM cards failed")
        await update.effective_message.reply_text("Could not read the SIM list right now.")
        return

    if not records:
        await update.effective_message.reply_text("No SIM cards are currently tracked.")
        return

    today = deps.clock.now().date()
    rows: list[SimListRow] = []
    for record in records:
        try:
            days_until: int | None = days_until_expiry(parse_expiry_date(record.expired_date), today)
        except InvalidExpiryDateError:
            days_until = None
        rows.append(
            SimListRow(
                record_id=record.id,
                name=record.name,
                sim_card_number=record.sim_card_number,
                expired_date=record.expired_date,
                days_until=days_until,
            )
        )

    await update.effective_message.reply_text(_render_list_message(rows))


async def add_command(update: Update, context: CallbackContext) -> None:
    deps = await _guard(update, context)
    if deps is None:
        return

    try:
        name, number, expired_date = validate_entry(*parse_fields(_command_text(context), 3))
        record_id = deps.store.insert(
            SimRecord(id=0, name=name, sim_card_number=number, expired_date=expired_date)
        )
    except DuplicateSimCardError as exc:
        await update.effective_message.reply_text(str(exc))
        return
    except StoreIOError:
        LOGGER.exception("Saving SIM card failed")
        await update.effective_message.reply_text("Could not save the SIM card right now.")
        return
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}. Usage: /add name | number | YYYY-MM-DD")
        return

    await update.effective_message.reply_text(f"Saved SIM #{record_id}: {name} expires {expired_date}.")


async def edit_command(update: Update, context: CallbackContext) -> None:
    deps = await _guard(update, context)
    if deps is None:
        return

    try:
        raw_id, *fields = parse_fields(_command_text(context), 4)
        record_id = parse_record_id(raw_id)
        name, number, expired_date = validate_entry(*fields)
        deps.store.update(SimRecord(id=record_id, name=name, sim_card_number=number, expired_date=expired_date))
    except RecordNotFoundError:
        await update.effective_message.reply_text("No SIM card with that id.")
        return
    except DuplicateSimCardError as exc:
        await update.effective_message.reply_text(str(exc))
        return
    except StoreIOError:
        LOGGER.exception("Updating SIM card failed")
        await update.effective_message.reply_text("Could not save the SIM card right now.")
        return
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}. Usage: /edit id | name | number | YYYY-MM-DD")
        return

    await update.effective_message.reply_text(f"Updated SIM #{record_id}.")


async def delete_command(update: Update, context: CallbackContext) -> None:
    deps = await _guard(update, context)
    if deps is None:
        return

    try:
        record_id = parse_record_id(_command_text(context))
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}. Usage: /delete id")
        return

    try:
        record = deps.store.get_by_id(record_id)
        if record is None:
            await update.effective_message.reply_text("No SIM card with that id.")
            return
        deps.store.delete(record)
    except StoreIOError:
        LOGGER.exception("Deleting SIM card failed")
        await update.effective_message.reply_text("Could not delete the SIM card right now.")
        return

    await deps.dispatcher.cancel_record(record_id)
    await update.effective_message.reply_text(f"Deleted SIM #{record_id} ({record.name}).")


async def settime_command(update: Update, context: CallbackContext) -> None:
    deps = await _guard(update, context)
    if deps is None:
        return

    try:
        hour, minute = parse_time_string(_command_text(context))
        deps.config_store.set_alarm_time(hour, minute)
    except InvalidConfigInputError as exc:
        await update.effective_message.reply_text(f"{exc}. Usage: /settime HH:MM")
        return

    fire_at = deps.scheduler.reschedule_on_config_change(hour, minute)
    reply = f"Notification time set to {hour:02d}:{minute:02d}. Next check {fire_at:%Y-%m-%d %H:%M}."
    pending = deps.scheduler.pending
    if pending is not None and pending.warning:
        reply += f"\n{pending.warning}"
    await update.effective_message.reply_text(reply)


async def setdays_command(update: Update, context: CallbackContext) -> None:
    deps = await _guard(update, context)
    if deps is None:
        return

    raw_text = _command_text(context).strip()
    try:
        requested = int(raw_text)
    except ValueError:
        await update.effective_message.reply_text("Usage: /setdays N (1-365)")
        return

    saved = deps.config_store.set_reminder_window_days(requested)
    deps.scheduler.reschedule_on_config_change(*deps.config_store.get_alarm_time())
    await update.effective_message.reply_text(f"Reminders will start {saved} day(s) before expiry.")


async def settz_command(update: Update, context: CallbackContext) -> None:
    deps = await _guard(update, context)
    if deps is None:
        return

    try:
        timezone = deps.config_store.set_timezone(_command_text(context))
    except InvalidConfigInputError as exc:
        await update.effective_message.reply_text(f"{exc}. Usage: /settz Area/City")
        return

    fire_at = deps.scheduler.reschedule_on_config_change(*deps.config_store.get_alarm_time())
    await update.effective_message.reply_text(f"Timezone set to {timezone}. Next check {fire_at:%Y-%m-%d %H:%M}.")


async def check_command(update: Update, context: CallbackContext) -> None:
    deps = await _guard(update, context)
    if deps is None:
        return

    result = await deps.check_service.run_check(deps.clock.now().date())
    if result is None:
        await update.effective_message.reply_text("Check skipped: the SIM list could not be read.")
        return

    await update.effective_message.reply_text(
        f"Check done: {len(result.buckets.expired)} expired, "
        f"{len(result.buckets.expiring_soon)} expiring soon, {len(result.buckets.ok)} ok."
    )


def build_handlers() -> list:
    return [
        CommandHandler("help", help_command),
        CommandHandler("start", help_command),
        CommandHandler("list", list_command),
        CommandHandler("add", add_command),
        CommandHandler("edit", edit_command),
        CommandHandler("delete", delete_command),
        CommandHandler("settime", settime_command),
        CommandHandler("setdays", setdays_command),
        CommandHandler("settz", settz_command),
        CommandHandler("check", check_command),
    ]
