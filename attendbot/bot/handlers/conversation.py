from __future__ import annotations

import logging

from aiogram import Bot, F, Router
from aiogram.enums import ChatAction, ChatType
from aiogram.types import CallbackQuery, Message

from attendbot.bot.ui import send_replies
from attendbot.engine.engine import ConversationEngine, InboundEvent
from attendbot.engine.states import DialogState

log = logging.getLogger(__name__)

router = Router()
router.message.filter(F.chat.type == ChatType.PRIVATE)


@router.callback_query(F.data)
async def on_menu_button(cb: CallbackQuery, bot: Bot, engine: ConversationEngine) -> None:
    # dismiss the spinner on the button first
    await cb.answer()
    if cb.message is None:
        return
    replies = await engine.handle(
        InboundEvent(user_id=cb.from_user.id, kind="callback", payload=cb.data or "", username=cb.from_user.username)
    )
    await send_replies(bot, cb.message.chat.id, replies)


@router.message(F.text)
async def on_text(message: Message, bot: Bot, engine: ConversationEngine, log_extra: dict | None = None) -> None:
    user = message.from_user
    if user is None or user.is_bot:
        return

    text = message.text or ""
    kind = "command" if text.startswith("/") else "text"
    log.info("conversation_input kind=%s", kind, extra=log_extra or {})

    if engine.session_state(user.id) == DialogState.AWAITING_PHONE:
        # the lookup can take a while
        await bot.send_chat_action(message.chat.id, ChatAction.TYPING)

    replies = await engine.handle(
        InboundEvent(user_id=user.id, kind=kind, payload=text, username=user.username, first_name=user.first_name)
    )
    await send_replies(bot, message.chat.id, replies)
