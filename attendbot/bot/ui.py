from __future__ import annotations

from typing import Iterable

from aiogram import Bot

from attendbot.bot.keyboards import kb_main
from attendbot.engine.engine import Reply


async def send_replies(bot: Bot, chat_id: int, replies: Iterable[Reply]) -> None:
    for r in replies:
        await bot.send_message(
            chat_id,
            r.text,
            parse_mode="HTML",
            reply_markup=kb_main() if r.menu else None,
            disable_web_page_preview=True,
        )
