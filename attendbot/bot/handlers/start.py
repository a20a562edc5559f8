from aiogram import Bot, F, Router
from aiogram.enums import ChatType
from aiogram.filters import CommandStart
from aiogram.types import Message

from attendbot.bot.ui import send_replies
from attendbot.engine.engine import ConversationEngine, InboundEvent

router = Router()
# referral links only count in private chats
router.message.filter(F.chat.type == ChatType.PRIVATE)


@router.message(CommandStart())
async def cmd_start(message: Message, bot: Bot, engine: ConversationEngine) -> None:
    user = message.from_user
    replies = await engine.handle(
        InboundEvent(
            user_id=user.id,
            kind="command",
            payload=message.text or "/start",
            username=user.username,
            first_name=user.first_name,
        )
    )
    await send_replies(bot, message.chat.id, replies)
