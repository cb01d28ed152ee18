from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    telegram_allowed_user_id: int
    telegram_allowed_chat_id: int
    records_path: Path
    reminder_settings_path: Path
    notification_state_path: Path
    notification_messages_path: Path
    exact_timing: bool = True


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    root = Path.cwd()

    token = _required_env("TELEGRAM_BOT_TOKEN")
    allowed_user_id = int(_required_env("TELEGRAM_ALLOWED_USER_ID"))
    allowed_chat_id = int(_required_env("TELEGRAM_ALLOWED_CHAT_ID"))

    records_path = Path(os.getenv("SIM_RECORDS_PATH", root / "data" / "sim_records.json"))
    reminder_settings_path = Path(
        os.getenv("REMINDER_SETTINGS_PATH", root / "config" / "reminder_settings.toml")
    )
    notification_state_path = Path(
        os.getenv("NOTIFICATION_STATE_PATH", root / "data" / "notification_state.json")
    )
    notification_messages_path = Path(
        os.getenv("NOTIFICATION_MESSAGES_PATH", root / "data" / "notification_messages.json")
    )

    return Settings(
        telegram_bot_token=token,
        telegram_allowed_user_id=allowed_user_id,
        telegram_allowed_chat_id=allowed_chat_id,
        records_path=records_path,
        reminder_settings_path=reminder_settings_path,
        notification_state_path=notification_state_path,
        notification_messages_path=notification_messages_path,
        exact_timing=_bool_env("SIM_EXPIRY_EXACT_TIMING", True),
    )
