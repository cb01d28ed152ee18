from __future__ import annotations

import logging
from pathlib import Path

from telegram.error import TelegramError
from telegram.ext import Application, CallbackContext

from sim_expiry.bot_handlers import HandlerDependencies, build_handlers
from sim_expiry.config_store import ReminderSettingsStore
from sim_expiry.expiry_service import ExpiryCheckService
from sim_expiry.notifications import NotificationDispatcher
from sim_expiry.record_store import JsonRecordStore
from sim_expiry.scheduler import Clock, ReminderScheduler, missed_check_due
from sim_expiry.settings import load_settings
from sim_expiry.telegram_host import JobQueueWakeUpTimer, TelegramNotificationSurface

LOGGER = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


async def scheduled_check_callback(context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    fired_at = deps.clock.now()
    try:
        await deps.check_service.run_check(fired_at.date())
    finally:
        hour, minute = deps.config_store.get_alarm_time()
        deps.scheduler.rearm_after_fire(fired_at, hour, minute)


async def on_host_restart(application: Application) -> None:
    deps: HandlerDependencies = application.bot_data["handler_deps"]
    deps.scheduler.on_host_restart()

    now = deps.clock.now()
    hour, minute = deps.config_store.get_alarm_time()
    if missed_check_due(now, deps.check_service.last_check_date(), hour, minute):
        LOGGER.info("Daily check for %s was missed while offline, running it now", now.date().isoformat())
        try:
            await deps.check_service.run_check(now.date())
        except TelegramError:
            LOGGER.exception("Catch-up check failed; the next scheduled check will run as usual")


def main() -> None:
    configure_logging()

    settings = load_settings()
    _ensure_parent(settings.records_path)
    _ensure_parent(settings.reminder_settings_path)
    _ensure_parent(settings.notification_state_path)
    _ensure_parent(settings.notification_messages_path)

    config_store = ReminderSettingsStore(settings.reminder_settings_path)
    clock = Clock(lambda: config_store.load().timezone)
    store = JsonRecordStore(settings.records_path)

    application = Application.builder().token(settings.telegram_bot_token).build()

    surface = TelegramNotificationSurface(
        bot=application.bot,
        chat_id=settings.telegram_allowed_chat_id,
        message_index_path=settings.notification_messages_path,
    )
    dispatcher = NotificationDispatcher(surface=surface, state_path=settings.notification_state_path)
    timer = JobQueueWakeUpTimer(
        application.job_queue,
        scheduled_check_callback,
        exact_allowed=settings.exact_timing,
    )

    application.bot_data["handler_deps"] = HandlerDependencies(
        settings=settings,
        store=store,
        config_store=config_store,
        scheduler=ReminderScheduler(timer=timer, clock=clock, config_store=config_store),
        check_service=ExpiryCheckService(store=store, config_store=config_store, dispatcher=dispatcher),
        dispatcher=dispatcher,
        clock=clock,
    )

    for handler in build_handlers():
        application.add_handler(handler)

    application.post_init = on_host_restart
    application.run_polling()


if __name__ == "__main__":
    main()
