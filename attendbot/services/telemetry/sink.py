from __future__ import annotations

import logging
from typing import Protocol

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

log = logging.getLogger(__name__)


class LogSink(Protocol):
    async def log_event(self, text: str) -> None: ...

    async def forward_query(self, text: str) -> bool: ...


class NullLogSink:
    """Used when no log chat is configured. Events still reach the process log."""

    async def log_event(self, text: str) -> None:
        log.info("event %s", text)

    async def forward_query(self, text: str) -> bool:
        log.info("user_query %s", text)
        return False


class TelegramLogSink:
    """Posts events to a Telegram log chat through a separate logger bot.

    Never raises: a broken log chat must not break the user's action.
    """

    def __init__(self, bot: Bot, *, log_chat_id: int, admin_chat_id: int | None = None) -> None:
        self.bot = bot
        self.log_chat_id = log_chat_id
        self.admin_chat_id = admin_chat_id

    async def _send(self, chat_id: int, text: str) -> bool:
        try:
            await self.bot.send_message(chat_id=chat_id, text=text, parse_mode="HTML")
            return True
        except TelegramAPIError:
            log.warning("telegram_log_send_failed chat_id=%s", chat_id, exc_info=True)
        except OSError:
            log.warning("telegram_log_network_failed chat_id=%s", chat_id, exc_info=True)
        return False

    async def log_event(self, text: str) -> None:
        await self._send(self.log_chat_id, f"[BOT LOG] {text}")

    async def forward_query(self, text: str) -> bool:
        """User queries go to the admin chat, or the log chat when no admin is set."""
        if self.admin_chat_id:
            return await self._send(self.admin_chat_id, text)
        return await self._send(self.log_chat_id, text)

    async def close(self) -> None:
        await self.bot.session.close()


def build_log_sink() -> LogSink:
    from attendbot.core.config import settings

    if settings.logger_bot_token and settings.log_chat_id:
        return TelegramLogSink(
            Bot(token=settings.logger_bot_token),
            log_chat_id=settings.log_chat_id,
            admin_chat_id=settings.admin_chat_id,
        )
    log.warning("telegram_log_sink_disabled")
    return NullLogSink()
