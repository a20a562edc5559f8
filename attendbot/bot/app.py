import logging

from aiogram import Bot, Dispatcher

from attendbot.bot.admin import router as admin_router
from attendbot.bot.handlers.conversation import router as conversation_router
from attendbot.bot.handlers.start import router as start_router
from attendbot.bot.middlewares import CorrelationIdMiddleware, RateLimitMiddleware
from attendbot.engine.engine import ConversationEngine

log = logging.getLogger(__name__)


def build_dispatcher(engine: ConversationEngine) -> Dispatcher:
    dp = Dispatcher(engine=engine)
    dp.message.middleware(CorrelationIdMiddleware())
    dp.callback_query.middleware(CorrelationIdMiddleware())
    dp.callback_query.middleware(RateLimitMiddleware(min_interval_sec=0.4))

    # order matters: the conversation router takes every remaining text
    dp.include_router(start_router)
    dp.include_router(admin_router)
    dp.include_router(conversation_router)
    return dp


async def run_bot(bot: Bot, engine: ConversationEngine) -> None:
    if not engine.bot_username:
        me = await bot.get_me()
        engine.bot_username = me.username
    dp = build_dispatcher(engine)
    log.info("bot_start username=%s", engine.bot_username)
    await dp.start_polling(bot)
