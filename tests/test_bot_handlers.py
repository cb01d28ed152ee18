import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from sim_expiry.bot_handlers import (
    HandlerDependencies,
    SimListRow,
    _render_list_message,
    is_authorized,
    parse_fields,
    parse_record_id,
    setdays_command,
    settz_command,
)
from sim_expiry.config_store import ReminderSettingsStore
from sim_expiry.scheduler import DAILY_CHECK_JOB_NAME, ReminderScheduler
from sim_expiry.settings import Settings


def _settings() -> Settings:
    return Settings(
        telegram_bot_token="token",
        telegram_allowed_user_id=111,
        telegram_allowed_chat_id=222,
        records_path=Path("data/sim_records.json"),
        reminder_settings_path=Path("config/reminder_settings.toml"),
        notification_state_path=Path("data/notification_state.json"),
        notification_messages_path=Path("data/notification_messages.json"),
    )


def test_parse_fields_splits_on_pipes() -> None:
    assert parse_fields(" Telkomsel | 0811 | 2026-3-7 ", 3) == ["Telkomsel", "0811", "2026-3-7"]


def test_parse_fields_rejects_missing_values() -> None:
    with pytest.raises(ValueError):
        parse_fields("Telkomsel | | 2026-03-07", 3)
    with pytest.raises(ValueError):
        parse_fields("Telkomsel | 0811", 3)


def test_parse_record_id() -> None:
    assert parse_record_id(" #12 ") == 12
    with pytest.raises(ValueError):
        parse_record_id("twelve")


def test_render_list_message() -> None:
    message = _render_list_message(
        [
            SimListRow(record_id=1, name="Telkomsel", sim_card_number="0811", expired_date="2026-03-10", days_until=3),
            SimListRow(record_id=2, name="XL", sim_card_number="0817", expired_date="2026-03-01", days_until=-6),
            SimListRow(record_id=3, name="Tri", sim_card_number="0895", expired_date="2026-03-07", days_until=0),
            SimListRow(record_id=4, name="Old", sim_card_number="0000", expired_date="someday", days_until=None),
        ]
    )

    assert message == (
        "Tracked SIM cards (4)\n"
        "#1 Telkomsel (0811)\n"
        "   Expires 2026-03-10 | in 3d\n"
        "#2 XL (0817)\n"
        "   Expires 2026-03-01 | expired 6d ago\n"
        "#3 Tri (0895)\n"
        "   Expires 2026-03-07 | expires today\n"
        "#4 Old (0000)\n"
        "   Expires someday | invalid date"
    )


@dataclass
class FakeUser:
    id: int


@dataclass
class FakeChat:
    id: int


@dataclass
class FakeMessage:
    replies: list[str] = field(default_factory=list)

    async def reply_text(self, text: str) -> None:
        self.replies.append(text)


@dataclass
class FakeUpdate:
    effective_user: FakeUser
    effective_chat: FakeChat
    effective_message: FakeMessage | None = None


def test_is_authorized_true() -> None:
    update = FakeUpdate(effective_user=FakeUser(id=111), effective_chat=FakeChat(id=222))
    assert is_authorized(update, _settings()) is True


def test_is_authorized_false() -> None:
    update = FakeUpdate(effective_user=FakeUser(id=111), effective_chat=FakeChat(id=999))
    assert is_authorized(update, _settings()) is False


@dataclass
class FakeTimer:
    armed: dict[str, tuple[datetime, bool]] = field(default_factory=dict)

    def arm(self, when: datetime, name: str, *, exact: bool) -> None:
        self.armed[name] = (when, exact)

    def disarm(self, name: str) -> None:
        self.armed.pop(name, None)


@dataclass
class FixedClock:
    current: datetime

    def now(self) -> datetime:
        return self.current


NOW = datetime(2026, 3, 7, 12, 0, tzinfo=timezone.utc)


def _owner_command(tmp_path: Path, *args: str) -> tuple[FakeUpdate, SimpleNamespace, FakeTimer]:
    timer = FakeTimer()
    clock = FixedClock(NOW)
    config_store = ReminderSettingsStore(tmp_path / "reminder_settings.toml")
    deps = HandlerDependencies(
        settings=_settings(),
        store=None,
        config_store=config_store,
        scheduler=ReminderScheduler(timer=timer, clock=clock, config_store=config_store),
        check_service=None,
        dispatcher=None,
        clock=clock,
    )
    update = FakeUpdate(effective_user=FakeUser(id=111), effective_chat=FakeChat(id=222), effective_message=FakeMessage())
    context = SimpleNamespace(args=list(args), application=SimpleNamespace(bot_data={"handler_deps": deps}))
    return update, context, timer


def test_settz_saves_timezone_and_rearms(tmp_path: Path) -> None:
    update, context, timer = _owner_command(tmp_path, "Asia/Jakarta")

    asyncio.run(settz_command(update, context))

    deps = context.application.bot_data["handler_deps"]
    assert deps.config_store.load().timezone == "Asia/Jakarta"
    assert timer.armed == {DAILY_CHECK_JOB_NAME: (datetime(2026, 3, 8, 7, 0, tzinfo=timezone.utc), True)}
    assert update.effective_message.replies == ["Timezone set to Asia/Jakarta. Next check 2026-03-08 07:00."]


def test_settz_rejects_unknown_timezone(tmp_path: Path) -> None:
    update, context, timer = _owner_command(tmp_path, "Mars/Olympus_Mons")

    asyncio.run(settz_command(update, context))

    assert context.application.bot_data["handler_deps"].config_store.load().timezone is None
    assert timer.armed == {}
    assert "Usage: /settz" in update.effective_message.replies[0]


def test_setdays_clamps_and_rearms(tmp_path: Path) -> None:
    update, context, timer = _owner_command(tmp_path, "500")

    asyncio.run(setdays_command(update, context))

    assert context.application.bot_data["handler_deps"].config_store.get_reminder_window_days() == 365
    assert DAILY_CHECK_JOB_NAME in timer.armed
    assert update.effective_message.replies == ["Reminders will start 365 day(s) before expiry."]


def test_commands_from_strangers_change_nothing(tmp_path: Path) -> None:
    update, context, timer = _owner_command(tmp_path, "Asia/Jakarta")
    update.effective_user = FakeUser(id=999)

    asyncio.run(settz_command(update, context))

    assert context.application.bot_data["handler_deps"].config_store.load().timezone is None
    assert timer.armed == {}
    assert update.effective_message.replies == ["This bot is restricted to its configured owner."]
