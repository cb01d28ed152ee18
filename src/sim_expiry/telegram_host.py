from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from telegram import Bot
from telegram.error import BadRequest, Forbidden, TelegramError
from telegram.ext import JobQueue

from sim_expiry.notifications import NotificationCapability, NotificationDeliveryError, NotificationDeniedError
from sim_expiry.scheduler import ExactTimingDeniedError
from sim_expiry.storage import read_json, write_json_atomic

LOGGER = logging.getLogger(__name__)

# A wake-up that came due while the host was asleep still runs once, late.
WAKE_UP_JOB_KWARGS = {"misfire_grace_time": None, "coalesce": True}
DENIAL_RETRY_SECONDS = 12 * 60 * 60


class JobQueueWakeUpTimer:
    """Arms one-shot wake-ups on the bot's job queue.

    Exact and inexact wake-ups are armed the same way; ``exact_allowed=False``
    only makes the host refuse exact requests so the scheduler records the
    downgrade.
    """

    def __init__(self, job_queue: JobQueue, callback: Any, *, exact_allowed: bool = True) -> None:
        self._job_queue = job_queue
        self._callback = callback
        self._exact_allowed = exact_allowed

    def arm(self, when: datetime, name: str, *, exact: bool) -> None:
        if exact and not self._exact_allowed:
            raise ExactTimingDeniedError("Exact wake-ups are disabled for this host")

        self._job_queue.run_once(self._callback, when=when, name=name, job_kwargs=dict(WAKE_UP_JOB_KWARGS))

    def disarm(self, name: str) -> None:
        for job in self._job_queue.get_jobs_by_name(name):
            job.schedule_removal()


class TelegramNotificationSurface:
    """Shows reminders as messages in the owner's chat.

    Each key maps to one chat message: replacing a key edits that message and
    cancelling it deletes the message. A ``Forbidden`` answer (bot blocked)
    marks the surface denied until ``denial_retry_seconds`` have passed, after
    which the next check tries again.
    """

    def __init__(
        self,
        *,
        bot: Bot,
        chat_id: int,
        message_index_path: Path,
        denial_retry_seconds: float = DENIAL_RETRY_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bot = bot
        self._chat_id = chat_id
        self._message_index_path = message_index_path
        self._denial_retry_seconds = denial_retry_seconds
        self._monotonic = monotonic
        self._denied_at: float | None = None

    def _load_index(self) -> dict[str, int]:
        data = read_json(self._message_index_path, {})
        return {str(key): int(value) for key, value in data.get("messages", {}).items()}

    def _save_index(self, messages: dict[str, int]) -> None:
        write_json_atomic(self._message_index_path, {"messages": messages})

    def _deny(self, exc: Forbidden) -> NotificationDeniedError:
        self._denied_at = self._monotonic()
        return NotificationDeniedError(str(exc))

    def capability(self) -> NotificationCapability:
        if not self._chat_id:
            return NotificationCapability.NOT_ASKED
        if self._denied_at is not None:
            if self._monotonic() - self._denied_at < self._denial_retry_seconds:
                return NotificationCapability.DENIED
            LOGGER.info("Retrying notifications after an earlier refusal")
            self._denied_at = None
        return NotificationCapability.GRANTED

    async def show(self, key: str, title: str, body: str) -> None:
        text = f"{title}\n{body}"
        messages = self._load_index()
        message_id = messages.get(key)

        try:
            if message_id is not None:
                try:
                    await self._bot.edit_message_text(text=text, chat_id=self._chat_id, message_id=message_id)
                    self._denied_at = None
                    return
                except BadRequest as exc:
                    if "not modified" in str(exc).lower():
                        return
                    LOGGER.info("Could not edit message for %s (%s), sending a new one", key, exc)

            message = await self._bot.send_message(chat_id=self._chat_id, text=text)
        except Forbidden as exc:
            raise self._deny(exc) from exc
        except TelegramError as exc:
            raise NotificationDeliveryError(str(exc)) from exc

        self._denied_at = None
        messages[key] = message.message_id
        self._save_index(messages)

    async def cancel(self, key: str) -> None:
        messages = self._load_index()
        message_id = messages.pop(key, None)
        if message_id is None:
            return

        try:
            await self._bot.delete_message(chat_id=self._chat_id, message_id=message_id)
        except BadRequest as exc:
            LOGGER.info("Message for %s already gone: %s", key, exc)
        except Forbidden as exc:
            raise self._deny(exc) from exc
        except TelegramError as exc:
            messages[key] = message_id
            raise NotificationDeliveryError(str(exc)) from exc
        finally:
            self._save_index(messages)
