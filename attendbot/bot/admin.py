from __future__ import annotations

import logging

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from attendbot.bot.auth import is_admin
from attendbot.db.session import unit_of_work
from attendbot.engine.engine import ConversationEngine
from attendbot.services.referrals.service import SUPPORTED_REWARD_TYPES, referral_service

log = logging.getLogger(__name__)

router = Router()

NOT_AUTHORIZED = "🚫 You are not authorized to use this command."


def _parse_user_id(raw: str | None) -> int | None:
    raw = (raw or "").strip()
    if not raw.lstrip("-").isdigit():
        return None
    return int(raw)


@router.message(Command("leaderboard"))
async def admin_leaderboard(message: Message, engine: ConversationEngine) -> None:
    if not is_admin(message.from_user.id):
        await message.answer(NOT_AUTHORIZED)
        return

    async with unit_of_work() as store:
        rows = await referral_service.get_leaderboard(store)

    lines = ["🏆 <b>Top Referrers Leaderboard</b>", ""]
    if not rows:
        lines.append("No referrals recorded yet.")
    else:
        for i, row in enumerate(rows, start=1):
            lines.append(
                f"{i}. <code>User {row.referrer_id}</code>: {row.rewarded} rewarded referrals ({row.total} total)"
            )
        lines.append("")
        lines.append("<i>Referrer IDs are displayed for admin purposes.</i>")
    await message.answer("\n".join(lines), parse_mode="HTML")
    await engine.sink.log_event(f"🔑 Admin <code>{message.from_user.id}</code> requested leaderboard.")


@router.message(Command("reset_referral"))
async def admin_reset_referral(message: Message, command: CommandObject, engine: ConversationEngine) -> None:
    if not is_admin(message.from_user.id):
        await message.answer(NOT_AUTHORIZED)
        return

    referred_id = _parse_user_id(command.args)
    if referred_id is None:
        await message.answer("Usage: /reset_referral <user_id>")
        return

    async with unit_of_work() as store:
        ok = await referral_service.reset_referral(store, referred_id)

    if ok:
        await message.answer(f"✅ Referral for user <code>{referred_id}</code> has been reset (deleted).", parse_mode="HTML")
        await engine.sink.log_event(
            f"✅ Admin <code>{message.from_user.id}</code> reset referral for <code>{referred_id}</code>."
        )
    else:
        await message.answer(f"❌ No referral found for user <code>{referred_id}</code>.", parse_mode="HTML")


@router.message(Command("revoke_referral"))
async def admin_revoke_referral(message: Message, command: CommandObject, engine: ConversationEngine) -> None:
    if not is_admin(message.from_user.id):
        await message.answer(NOT_AUTHORIZED)
        return

    referred_id = _parse_user_id(command.args)
    if referred_id is None:
        await message.answer("Usage: /revoke_referral <user_id>")
        return

    async with unit_of_work() as store:
        result = await referral_service.revoke_referral_reward(store, referred_id)

    await message.answer(("✅ " if result.success else "❌ ") + result.message)
    if result.success:
        await engine.sink.log_event(
            f"✅ Admin <code>{message.from_user.id}</code> revoked reward for <code>{referred_id}</code>."
        )


@router.message(Command("config_reward"))
async def admin_config_reward(message: Message, command: CommandObject, engine: ConversationEngine) -> None:
    if not is_admin(message.from_user.id):
        await message.answer(NOT_AUTHORIZED)
        return

    parts = (command.args or "").split()
    if len(parts) != 2 or not parts[0].isdigit():
        await message.answer("Usage: /config_reward <amount> <type>")
        return

    amount, reward_type = int(parts[0]), parts[1]
    try:
        async with unit_of_work() as store:
            cfg = await referral_service.set_reward_config(store, reward_type=reward_type, amount=amount)
    except ValueError as e:
        if str(e) == "amount_must_be_positive":
            await message.answer("❌ Invalid amount. Please specify a positive number.")
        else:
            await message.answer(
                "❌ Invalid reward type. Supported types: " + ", ".join(SUPPORTED_REWARD_TYPES) + "."
            )
        return

    await message.answer(f"✅ Referral reward configured: {cfg.amount} of type '{cfg.reward_type}'.")
    log.info("admin_reward_configured admin=%s type=%s amount=%s", message.from_user.id, cfg.reward_type, cfg.amount)
    await engine.sink.log_event(
        f"🔑 Admin <code>{message.from_user.id}</code> configured referral reward: {cfg.amount} {cfg.reward_type}."
    )
