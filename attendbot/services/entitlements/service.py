from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from html import escape
from typing import Callable

from attendbot.core.time import days_left, ensure_aware_utc, fmt_dt_ist, utcnow
from attendbot.db.models import UserBenefits, UserPlan
from attendbot.db.store import Store
from attendbot.services.entitlements.plans import (
    FREE_LIMIT,
    REFERRAL_UNLIMITED_DAYS,
    get_plan,
    plan_from_json,
    plan_to_json,
)

log = logging.getLogger(__name__)

REASON_REFERRAL_UNLIMITED = "referral_unlimited"
REASON_ACTIVE_PLAN = "active_plan"
REASON_FREE_LIMIT = "free_limit"
REASON_LIMIT_EXCEEDED = "limit_exceeded"


@dataclass(frozen=True)
class CheckDecision:
    allowed: bool
    reason: str


class EntitlementService:
    """Quota counters, plans and referral grants for a single user.

    Access order, first match wins: referral unlimited window, active plan,
    remaining free checks.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._now = clock

    # ---- records -------------------------------------------------------------
    async def get_user_plan(self, store: Store, user_id: int, *, for_update: bool = False) -> UserPlan:
        plan = await store.get(UserPlan, user_id, for_update=for_update)
        if plan is None:
            plan = await store.put(
                UserPlan(
                    user_id=user_id,
                    checks_used=0,
                    plan_active=False,
                    plan_expires_at=None,
                    plan_details=None,
                    hidden_feature_unlocked=False,
                )
            )
        return plan

    async def get_user_benefits(self, store: Store, user_id: int) -> UserBenefits:
        benefits = await store.get(UserBenefits, user_id)
        if benefits is None:
            benefits = await store.put(
                UserBenefits(
                    user_id=user_id,
                    unlimited_until=None,
                    boost_subject_id=None,
                    boost_subject_name=None,
                    referral_benefit_received=False,
                )
            )
        return benefits

    def _plan_running(self, plan: UserPlan) -> bool:
        expires = ensure_aware_utc(plan.plan_expires_at)
        return bool(plan.plan_active and expires and self._now() < expires)

    def _unlimited_running(self, benefits: UserBenefits) -> bool:
        until = ensure_aware_utc(benefits.unlimited_until)
        return bool(until and self._now() < until)

    async def _load_plan(self, store: Store, user_id: int, *, for_update: bool = False) -> tuple[UserPlan, str | None]:
        """Plan row with lazy expiry applied.

        Returns the name of the plan that lapsed during this read, if any.
        """
        plan = await self.get_user_plan(store, user_id, for_update=for_update)
        if plan.plan_active and not self._plan_running(plan):
            details = plan_from_json(plan.plan_details) or {}
            expired_name = details.get("name") or "premium"
            await self._clear_plan(store, plan)
            log.info("plan_expired user_id=%s plan=%s", user_id, details.get("key"))
            return plan, expired_name
        return plan, None

    async def _clear_plan(self, store: Store, plan: UserPlan) -> None:
        plan.plan_active = False
        plan.plan_expires_at = None
        plan.plan_details = None
        plan.hidden_feature_unlocked = False
        plan.checks_used = 0
        await store.put(plan)

    # ---- access --------------------------------------------------------------
    async def has_unlimited_checks(self, store: Store, user_id: int) -> bool:
        return self._unlimited_running(await self.get_user_benefits(store, user_id))

    async def can_perform_check(self, store: Store, user_id: int) -> CheckDecision:
        if await self.has_unlimited_checks(store, user_id):
            return CheckDecision(True, REASON_REFERRAL_UNLIMITED)

        plan, _ = await self._load_plan(store, user_id)
        if self._plan_running(plan):
            return CheckDecision(True, REASON_ACTIVE_PLAN)

        if plan.checks_used < FREE_LIMIT:
            return CheckDecision(True, REASON_FREE_LIMIT)

        return CheckDecision(False, REASON_LIMIT_EXCEEDED)

    async def record_free_check(self, store: Store, user_id: int) -> bool:
        """Count one free check, unless a plan or referral grant covers the user right now.

        The grant re-check and the increment run on one locked row, so a plan
        bought between the access check and this call is never charged.
        """
        plan, _ = await self._load_plan(store, user_id, for_update=True)
        if plan.plan_active or await self.has_unlimited_checks(store, user_id):
            return False
        plan.checks_used = int(plan.checks_used or 0) + 1
        await store.put(plan)
        log.info("free_check_recorded user_id=%s used=%s", user_id, plan.checks_used)
        return True

    # ---- plans ---------------------------------------------------------------
    async def activate_plan(self, store: Store, user_id: int, plan_key: str) -> bool:
        plan_def = get_plan(plan_key)
        if plan_def is None:
            log.warning("plan_activate_unknown_key user_id=%s key=%s", user_id, plan_key)
            return False

        plan = await self.get_user_plan(store, user_id, for_update=True)
        expires_at = self._now() + timedelta(days=plan_def.duration_days)
        plan.checks_used = 0
        plan.plan_active = True
        plan.plan_expires_at = expires_at
        plan.plan_details = plan_to_json(plan_def)
        plan.hidden_feature_unlocked = True
        await store.put(plan)
        log.info("plan_activated user_id=%s plan=%s expires_at=%s", user_id, plan_def.key, expires_at.isoformat())
        return True

    async def deactivate_plan(self, store: Store, user_id: int) -> None:
        plan = await self.get_user_plan(store, user_id, for_update=True)
        if plan.plan_active:
            await self._clear_plan(store, plan)
            log.info("plan_deactivated user_id=%s", user_id)

    async def is_hidden_feature_unlocked(self, store: Store, user_id: int, feature_id: str) -> bool:
        return await self.unlocked_feature(store, user_id) == feature_id

    async def unlocked_feature(self, store: Store, user_id: int) -> str | None:
        plan, _ = await self._load_plan(store, user_id)
        if not plan.hidden_feature_unlocked:
            return None
        details = plan_from_json(plan.plan_details) or {}
        return details.get("hidden_feature")

    # ---- referral grants -----------------------------------------------------
    async def apply_referral_benefit(
        self,
        store: Store,
        user_id: int,
        subject_id: str | None = None,
        subject_name: str | None = None,
    ) -> None:
        benefits = await self.get_user_benefits(store, user_id)
        # refresh, never stack
        benefits.unlimited_until = self._now() + timedelta(days=REFERRAL_UNLIMITED_DAYS)
        if subject_id and subject_name:
            benefits.boost_subject_id = str(subject_id)
            benefits.boost_subject_name = subject_name
        await store.put(benefits)
        log.info(
            "referral_benefit_applied user_id=%s until=%s subject=%s",
            user_id,
            benefits.unlimited_until.isoformat(),
            subject_id,
        )

    async def has_received_referral_benefit(self, store: Store, user_id: int) -> bool:
        return bool((await self.get_user_benefits(store, user_id)).referral_benefit_received)

    async def mark_referral_benefit_received(self, store: Store, user_id: int) -> None:
        benefits = await self.get_user_benefits(store, user_id)
        benefits.referral_benefit_received = True
        await store.put(benefits)

    # ---- status --------------------------------------------------------------
    async def usage_status_summary(self, store: Store, user_id: int) -> str:
        now = self._now()
        parts: list[str] = []

        benefits = await self.get_user_benefits(store, user_id)
        if self._unlimited_running(benefits):
            n = days_left(benefits.unlimited_until, now)
            parts.append(f"🎁 You have <b>unlimited attendance checks</b> for {n} day(s) from a referral!")
        if benefits.boost_subject_id:
            parts.append(
                f"🎯 Your attendance boost is active for <b>{escape(benefits.boost_subject_name or '')}</b>."
            )

        plan, expired_name = await self._load_plan(store, user_id)
        remaining = max(0, FREE_LIMIT - int(plan.checks_used or 0))
        if self._plan_running(plan):
            details = plan_from_json(plan.plan_details) or {}
            n = days_left(plan.plan_expires_at, now)
            text = (
                f"🌟 You have an active <b>{escape(details.get('name') or 'premium')}</b> program! "
                f"It expires in {n} days (on {fmt_dt_ist(plan.plan_expires_at)})."
            )
            if details.get("target_percentage"):
                text += f" We're committed to getting your attendance to <b>{details['target_percentage']}%</b>!"
            parts.append(text)
        elif expired_name:
            parts.append(
                f"🚫 Your <b>{escape(expired_name)}</b> program has expired. "
                f"You now have <b>{remaining} free checks</b> remaining."
            )
        elif not parts:
            if remaining > 0:
                parts.append(f"🆓 You have <b>{remaining} free attendance checks</b> remaining.")
            else:
                parts.append(
                    "🚫 You've used all your free attendance checks. "
                    "Consider enrolling in a program with /plans, or invite friends with /invite."
                )

        return "\n\n".join(parts)


entitlement_service = EntitlementService()
