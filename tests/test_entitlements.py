"""Tests for the entitlement ledger: quota, plans, referral grants, status text."""

import json
from datetime import timedelta

import pytest

from attendbot.db.models import UserPlan
from attendbot.services.entitlements.plans import FREE_LIMIT, PLANS, get_plan, plans_message
from attendbot.services.entitlements.service import (
    REASON_ACTIVE_PLAN,
    REASON_FREE_LIMIT,
    REASON_LIMIT_EXCEEDED,
    REASON_REFERRAL_UNLIMITED,
)

UID = 5001
_DAY = timedelta(days=1)


async def _use_free_checks(entitlements, store, n: int) -> None:
    for _ in range(n):
        assert await entitlements.record_free_check(store, UID) is True


class TestPlanCatalog:
    def test_three_plans(self):
        assert set(PLANS) == {"1_month_boost", "3_months_pro", "6_months_elite"}
        assert PLANS["3_months_pro"].duration_days == 90
        assert PLANS["6_months_elite"].hidden_feature == "personalized_coaching_analytics"

    def test_catalog_is_read_only(self):
        with pytest.raises(TypeError):
            PLANS["free"] = PLANS["1_month_boost"]  # type: ignore[index]

    def test_get_plan_normalizes_key(self):
        assert get_plan("  3_MONTHS_PRO ") is PLANS["3_months_pro"]
        assert get_plan("lifetime") is None
        assert get_plan(None) is None

    def test_plans_message_lists_buy_commands(self):
        text = plans_message()
        for key in PLANS:
            assert f"/buy {key}" in text


class TestCanPerformCheck:
    @pytest.mark.asyncio
    async def test_new_user_has_free_checks(self, entitlements, store):
        decision = await entitlements.can_perform_check(store, UID)
        assert decision.allowed
        assert decision.reason == REASON_FREE_LIMIT

    @pytest.mark.asyncio
    async def test_exhausted_free_quota(self, entitlements, store):
        await _use_free_checks(entitlements, store, FREE_LIMIT)
        decision = await entitlements.can_perform_check(store, UID)
        assert not decision.allowed
        assert decision.reason == REASON_LIMIT_EXCEEDED

    @pytest.mark.asyncio
    async def test_active_plan_masks_exhausted_quota(self, entitlements, store):
        await _use_free_checks(entitlements, store, FREE_LIMIT)
        assert await entitlements.activate_plan(store, UID, "1_month_boost")
        decision = await entitlements.can_perform_check(store, UID)
        assert decision.allowed
        assert decision.reason == REASON_ACTIVE_PLAN

    @pytest.mark.asyncio
    async def test_referral_unlimited_wins_over_everything(self, entitlements, store):
        await _use_free_checks(entitlements, store, FREE_LIMIT)
        await entitlements.activate_plan(store, UID, "6_months_elite")
        await entitlements.apply_referral_benefit(store, UID)
        decision = await entitlements.can_perform_check(store, UID)
        assert decision.allowed
        assert decision.reason == REASON_REFERRAL_UNLIMITED

    @pytest.mark.asyncio
    async def test_unlimited_window_ends(self, entitlements, store, clock):
        await entitlements.apply_referral_benefit(store, UID)
        clock.advance(days=1, seconds=1)
        decision = await entitlements.can_perform_check(store, UID)
        assert decision.reason == REASON_FREE_LIMIT


class TestRecordFreeCheck:
    @pytest.mark.asyncio
    async def test_counts_when_nothing_else_applies(self, entitlements, store):
        assert await entitlements.record_free_check(store, UID) is True
        plan = await entitlements.get_user_plan(store, UID)
        assert plan.checks_used == 1

    @pytest.mark.asyncio
    async def test_not_counted_while_plan_active(self, entitlements, store):
        await entitlements.activate_plan(store, UID, "1_month_boost")
        assert await entitlements.record_free_check(store, UID) is False
        plan = await entitlements.get_user_plan(store, UID)
        assert plan.checks_used == 0

    @pytest.mark.asyncio
    async def test_not_counted_while_unlimited(self, entitlements, store):
        await entitlements.apply_referral_benefit(store, UID)
        assert await entitlements.record_free_check(store, UID) is False
        plan = await entitlements.get_user_plan(store, UID)
        assert plan.checks_used == 0


class TestPlans:
    @pytest.mark.asyncio
    async def test_activate_unknown_key(self, entitlements, store):
        assert await entitlements.activate_plan(store, UID, "lifetime") is False
        plan = await entitlements.get_user_plan(store, UID)
        assert plan.plan_active is False

    @pytest.mark.asyncio
    async def test_activate_resets_counter_and_snapshots(self, entitlements, store, clock):
        await _use_free_checks(entitlements, store, 3)
        assert await entitlements.activate_plan(store, UID, "3_months_pro")

        plan = await store.get(UserPlan, UID)
        assert plan.checks_used == 0
        assert plan.plan_active is True
        assert plan.hidden_feature_unlocked is True
        assert plan.plan_expires_at == clock.now + timedelta(days=90)
        assert json.loads(plan.plan_details)["key"] == "3_months_pro"

    @pytest.mark.asyncio
    async def test_activate_twice_same_instant_is_idempotent(self, entitlements, store):
        await entitlements.activate_plan(store, UID, "1_month_boost")
        first = (await entitlements.get_user_plan(store, UID)).plan_expires_at
        await entitlements.activate_plan(store, UID, "1_month_boost")
        plan = await entitlements.get_user_plan(store, UID)
        assert plan.plan_expires_at == first
        assert plan.checks_used == 0

    @pytest.mark.asyncio
    async def test_reactivation_does_not_stack(self, entitlements, store, clock):
        await entitlements.activate_plan(store, UID, "1_month_boost")
        clock.advance(days=10)
        await entitlements.activate_plan(store, UID, "1_month_boost")
        plan = await entitlements.get_user_plan(store, UID)
        assert plan.plan_expires_at == clock.now + 30 * _DAY

    @pytest.mark.asyncio
    async def test_deactivate(self, entitlements, store):
        await entitlements.activate_plan(store, UID, "1_month_boost")
        await entitlements.deactivate_plan(store, UID)
        plan = await entitlements.get_user_plan(store, UID)
        assert plan.plan_active is False
        assert plan.plan_details is None
        assert plan.hidden_feature_unlocked is False

    @pytest.mark.asyncio
    async def test_hidden_feature(self, entitlements, store):
        assert await entitlements.unlocked_feature(store, UID) is None
        await entitlements.activate_plan(store, UID, "3_months_pro")
        assert await entitlements.is_hidden_feature_unlocked(store, UID, "priority_consultation")
        assert not await entitlements.is_hidden_feature_unlocked(store, UID, "exclusive_strategies_tips")

    @pytest.mark.asyncio
    async def test_hidden_feature_locks_after_expiry(self, entitlements, store, clock):
        await entitlements.activate_plan(store, UID, "1_month_boost")
        clock.advance(days=31)
        assert await entitlements.unlocked_feature(store, UID) is None


class TestReferralBenefit:
    @pytest.mark.asyncio
    async def test_refresh_not_stack(self, entitlements, store, clock):
        await entitlements.apply_referral_benefit(store, UID)
        clock.advance(hours=12)
        await entitlements.apply_referral_benefit(store, UID)
        benefits = await entitlements.get_user_benefits(store, UID)
        assert benefits.unlimited_until == clock.now + _DAY

    @pytest.mark.asyncio
    async def test_subject_needs_id_and_name(self, entitlements, store):
        await entitlements.apply_referral_benefit(store, UID, subject_id="101")
        benefits = await entitlements.get_user_benefits(store, UID)
        assert benefits.boost_subject_id is None

        await entitlements.apply_referral_benefit(store, UID, subject_id="101", subject_name="FYBSC CS")
        benefits = await entitlements.get_user_benefits(store, UID)
        assert benefits.boost_subject_id == "101"
        assert benefits.boost_subject_name == "FYBSC CS"

    @pytest.mark.asyncio
    async def test_received_flag(self, entitlements, store):
        assert not await entitlements.has_received_referral_benefit(store, UID)
        await entitlements.mark_referral_benefit_received(store, UID)
        assert await entitlements.has_received_referral_benefit(store, UID)


class TestUsageStatusSummary:
    @pytest.mark.asyncio
    async def test_free_user(self, entitlements, store):
        await _use_free_checks(entitlements, store, 2)
        text = await entitlements.usage_status_summary(store, UID)
        assert "<b>3 free attendance checks</b> remaining" in text

    @pytest.mark.asyncio
    async def test_exhausted(self, entitlements, store):
        await _use_free_checks(entitlements, store, FREE_LIMIT)
        text = await entitlements.usage_status_summary(store, UID)
        assert "used all your free attendance checks" in text

    @pytest.mark.asyncio
    async def test_active_plan(self, entitlements, store):
        await entitlements.activate_plan(store, UID, "1_month_boost")
        text = await entitlements.usage_status_summary(store, UID)
        assert "1 Month Attendance Boost" in text
        assert "expires in 30 days" in text

    @pytest.mark.asyncio
    async def test_unlimited_and_boost(self, entitlements, store):
        await entitlements.apply_referral_benefit(store, UID, subject_id="101", subject_name="FYBSC CS")
        text = await entitlements.usage_status_summary(store, UID)
        parts = text.split("\n\n")
        assert "unlimited attendance checks" in parts[0]
        assert "FYBSC CS" in parts[1]
        # free count is only reported when nothing else was
        assert "free attendance checks" not in text

    @pytest.mark.asyncio
    async def test_expiry_is_applied_lazily(self, entitlements, store, clock):
        await entitlements.activate_plan(store, UID, "1_month_boost")
        clock.advance(days=30, seconds=1)

        text = await entitlements.usage_status_summary(store, UID)
        assert "has expired" in text
        assert f"<b>{FREE_LIMIT} free checks</b> remaining" in text

        plan = await entitlements.get_user_plan(store, UID)
        assert plan.plan_active is False
        assert plan.checks_used == 0

        # reported once; afterwards the user is a plain free user again
        text = await entitlements.usage_status_summary(store, UID)
        assert "has expired" not in text

