from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from attendbot.engine.engine import (
    CB_CHECK_ATTENDANCE,
    CB_INVITE_EARN,
    CB_MY_STATUS,
    CB_PLANS,
    CB_TALK_WITH_US,
)


def kb_main() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="✅ Check Attendance", callback_data=CB_CHECK_ATTENDANCE)
    b.button(text="📊 My Status", callback_data=CB_MY_STATUS)
    b.button(text="💰 Plans", callback_data=CB_PLANS)
    b.button(text="🤝 Invite & Earn", callback_data=CB_INVITE_EARN)
    b.button(text="🗣️ Talk with Us", callback_data=CB_TALK_WITH_US)
    b.adjust(1)
    return b.as_markup()
