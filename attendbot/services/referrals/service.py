from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy import case, func, select

from attendbot.core.errors import StorageUnavailable
from attendbot.core.time import utcnow
from attendbot.db.models import Referral, UserIdentity
from attendbot.db.models.referral import (
    REWARD_FAILED,
    REWARD_PENDING,
    REWARD_REVOKED,
    REWARD_REWARDED,
)
from attendbot.db.store import Store
from attendbot.repo import get_setting, get_setting_int, set_setting
from attendbot.services.entitlements.service import EntitlementService, entitlement_service

log = logging.getLogger(__name__)

REWARD_FREE_CHECKS = "free_checks"
REWARD_PLAN_DISCOUNT = "plan_discount"
SUPPORTED_REWARD_TYPES = (REWARD_FREE_CHECKS, REWARD_PLAN_DISCOUNT)

DEFAULT_REWARD_TYPE = REWARD_FREE_CHECKS
DEFAULT_REWARD_AMOUNT = 3

SETTING_REWARD_TYPE = "referral_reward_type"
SETTING_REWARD_AMOUNT = "referral_reward_amount"

LEADERBOARD_SIZE = 10


@dataclass(frozen=True)
class ReferralResult:
    success: bool
    message: str


@dataclass(frozen=True)
class RewardConfig:
    reward_type: str
    amount: int


@dataclass(frozen=True)
class LeaderboardRow:
    referrer_id: int
    rewarded: int
    total: int


def parse_referral_payload(payload: str | None) -> int | None:
    """``ref_<user_id>`` from a /start deep link."""
    if not payload:
        return None
    payload = payload.strip()
    if not payload.startswith("ref_"):
        return None
    raw = payload[len("ref_") :].strip()
    if not raw.isdigit():
        return None
    return int(raw)


class ReferralService:
    def __init__(
        self,
        entitlements: EntitlementService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.entitlements = entitlements or entitlement_service
        self._now = clock

    # ---- identities ----------------------------------------------------------
    async def is_new_user(self, store: Store, user_id: int) -> bool:
        return await store.get(UserIdentity, user_id) is None

    async def record_user(
        self,
        store: Store,
        user_id: int,
        *,
        username: str | None = None,
        first_name: str | None = None,
    ) -> bool:
        """Remember the user. True if this is the first time we see them."""
        user = await store.get(UserIdentity, user_id)
        if user is None:
            await store.put(
                UserIdentity(
                    user_id=user_id,
                    tg_username=username or None,
                    first_name=first_name or None,
                    first_seen_at=self._now(),
                )
            )
            log.info("user_first_seen user_id=%s", user_id)
            return True

        # Best-effort: keep Telegram profile snapshot somewhat fresh.
        changed = False
        if username is not None and user.tg_username != username:
            user.tg_username = username
            changed = True
        if first_name is not None and user.first_name != first_name:
            user.first_name = first_name
            changed = True
        if changed:
            await store.put(user)
        return False

    async def has_been_referred(self, store: Store, referred_id: int) -> bool:
        return await store.count(Referral, Referral.referred_user_id == referred_id) > 0

    # ---- reward config -------------------------------------------------------
    async def get_reward_config(self, store: Store) -> RewardConfig:
        reward_type = (await get_setting(store, SETTING_REWARD_TYPE) or "").strip() or DEFAULT_REWARD_TYPE
        amount = await get_setting_int(store, SETTING_REWARD_AMOUNT, default=DEFAULT_REWARD_AMOUNT)
        return RewardConfig(reward_type=reward_type, amount=amount)

    async def set_reward_config(self, store: Store, *, reward_type: str, amount: int) -> RewardConfig:
        reward_type = (reward_type or "").strip().lower()
        if int(amount) <= 0:
            raise ValueError("amount_must_be_positive")
        if reward_type not in SUPPORTED_REWARD_TYPES:
            raise ValueError("unsupported_reward_type")
        await set_setting(store, SETTING_REWARD_AMOUNT, int(amount))
        await set_setting(store, SETTING_REWARD_TYPE, reward_type)
        log.info("referral_reward_configured type=%s amount=%s", reward_type, amount)
        return RewardConfig(reward_type=reward_type, amount=int(amount))

    # ---- referrals -----------------------------------------------------------
    async def record_referral(
        self,
        store: Store,
        referrer_id: int,
        referred_id: int,
        *,
        referred_is_new: bool | None = None,
    ) -> ReferralResult:
        """Record that ``referrer_id`` brought ``referred_id`` and credit the referrer.

        ``referred_is_new`` lets /start pass the answer it got from
        ``record_user`` before the identity row existed.
        """
        if int(referrer_id) == int(referred_id):
            return ReferralResult(False, "Self-referral is not allowed.")

        if referred_is_new is None:
            referred_is_new = await self.is_new_user(store, referred_id)
        if not referred_is_new:
            return ReferralResult(False, "This user has already interacted with the bot and cannot be referred.")

        if await self.has_been_referred(store, referred_id):
            return ReferralResult(False, "This user has already been referred.")

        cfg = await self.get_reward_config(store)
        try:
            async with store.savepoint():
                referral = await store.add(
                    Referral(
                        referrer_id=int(referrer_id),
                        referred_user_id=int(referred_id),
                        reward_status=REWARD_PENDING,
                        reward_amount=cfg.amount,
                        reward_type=cfg.reward_type,
                        created_at=self._now(),
                    )
                )
        except StorageUnavailable:
            log.exception("referral_record_failed referrer=%s referred=%s", referrer_id, referred_id)
            return ReferralResult(False, "Failed to record referral.")

        if await self.reward_referrer(store, referral):
            return ReferralResult(True, f"Referral successful! Your friend earned {cfg.amount} {cfg.reward_type}.")
        return ReferralResult(False, "Referral recorded, but the reward could not be applied. Please contact support.")

    async def reward_referrer(self, store: Store, referral: Referral) -> bool:
        """Credit the referrer and move the record out of ``pending``.

        The credit runs in a savepoint: when it fails only the credit is rolled
        back and the record is marked ``failed`` in the same unit of work.
        """
        referral_id, referrer_id, amount = referral.id, referral.referrer_id, int(referral.reward_amount)
        if referral.reward_type != REWARD_FREE_CHECKS:
            # left pending for manual handling
            log.warning("referral_reward_unknown_type referral_id=%s type=%s", referral_id, referral.reward_type)
            referral.reward_status = REWARD_PENDING
            await store.put(referral)
            return False

        try:
            async with store.savepoint():
                # Granting = undoing consumption. Floored at 0, so a referrer who
                # has not used any checks yet gets nothing visible.
                plan = await self.entitlements.get_user_plan(store, referrer_id, for_update=True)
                plan.checks_used = max(0, int(plan.checks_used or 0) - amount)
                await store.put(plan)
        except StorageUnavailable:
            log.exception("referral_reward_failed referral_id=%s referrer=%s", referral_id, referrer_id)
            referral.reward_status = REWARD_FAILED
            await store.put(referral)
            return False

        referral.reward_status = REWARD_REWARDED
        await store.put(referral)
        log.info("referral_rewarded referral_id=%s referrer=%s amount=%s", referral_id, referrer_id, amount)
        return True

    async def get_referral(self, store: Store, referred_id: int) -> Referral | None:
        return await store.first(Referral, Referral.referred_user_id == referred_id)

    async def revoke_referral_reward(self, store: Store, referred_id: int) -> ReferralResult:
        referral = await self.get_referral(store, referred_id)
        if referral is None or referral.reward_status != REWARD_REWARDED:
            return ReferralResult(False, "No rewarded referral found for this user.")

        referrer_id = referral.referrer_id
        try:
            async with store.savepoint():
                if referral.reward_type == REWARD_FREE_CHECKS:
                    plan = await self.entitlements.get_user_plan(store, referrer_id, for_update=True)
                    # exact reversal, no cap
                    plan.checks_used = int(plan.checks_used or 0) + int(referral.reward_amount)
                    await store.put(plan)

                referral.reward_status = REWARD_REVOKED
                await store.put(referral)
        except StorageUnavailable as e:
            log.exception("referral_revoke_failed referred=%s", referred_id)
            return ReferralResult(False, f"Failed to revoke reward: {e}")

        log.info("referral_revoked referred=%s referrer=%s", referred_id, referrer_id)
        return ReferralResult(True, f"Reward for {referred_id} revoked successfully.")

    async def reset_referral(self, store: Store, referred_id: int) -> bool:
        deleted = await store.delete_where(Referral, Referral.referred_user_id == referred_id)
        if deleted:
            log.info("referral_reset referred=%s", referred_id)
        return deleted

    async def get_leaderboard(self, store: Store) -> list[LeaderboardRow]:
        rewarded = func.sum(case((Referral.reward_status == REWARD_REWARDED, 1), else_=0))
        total = func.count(Referral.referred_user_id)
        q = (
            select(Referral.referrer_id, rewarded.label("rewarded"), total.label("total"))
            .where(Referral.reward_status.in_((REWARD_REWARDED, REWARD_PENDING)))
            .group_by(Referral.referrer_id)
            .order_by(rewarded.desc(), total.desc(), Referral.referrer_id.asc())
            .limit(LEADERBOARD_SIZE)
        )
        res = await store.execute(q)
        return [
            LeaderboardRow(referrer_id=int(r.referrer_id), rewarded=int(r.rewarded or 0), total=int(r.total or 0))
            for r in res.all()
        ]


referral_service = ReferralService()
