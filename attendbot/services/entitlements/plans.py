from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from types import MappingProxyType
from typing import Mapping

# Max free attendance checks without a plan or a referral grant
FREE_LIMIT = 5

# Unlimited window granted by a referral
REFERRAL_UNLIMITED_DAYS = 1


@dataclass(frozen=True)
class Plan:
    key: str
    name: str
    price: int
    duration_days: int
    hidden_feature: str
    description: str
    target_percentage: int = 90


PLANS: Mapping[str, Plan] = MappingProxyType(
    {
        "1_month_boost": Plan(
            key="1_month_boost",
            name="1 Month Attendance Boost",
            price=500,
            duration_days=30,
            hidden_feature="exclusive_strategies_tips",
            description="Unlimited attendance checks for 1 month, plus exclusive strategies and tips.",
        ),
        "3_months_pro": Plan(
            key="3_months_pro",
            name="3 Months Pro Attendance Program",
            price=1200,
            duration_days=90,
            hidden_feature="priority_consultation",
            description="Unlimited attendance checks for 3 months, plus priority 1-on-1 consultation.",
        ),
        "6_months_elite": Plan(
            key="6_months_elite",
            name="6 Months Elite Attendance Coaching",
            price=2000,
            duration_days=180,
            hidden_feature="personalized_coaching_analytics",
            description="Unlimited attendance checks for 6 months, plus a personalized analytics dashboard.",
        ),
    }
)

# What /hiddenfeature shows for each unlocked feature
FEATURE_CONTENT: Mapping[str, str] = MappingProxyType(
    {
        "exclusive_strategies_tips": (
            "📈 <b>Exclusive strategies & tips</b>\n\n"
            "Plan your week around the lectures with the lowest attendance first, "
            "and check your numbers every Monday."
        ),
        "priority_consultation": (
            "📞 <b>Priority consultation</b>\n\n"
            "You are first in line. Use «Talk with us» from the main menu to book your 1-on-1 session."
        ),
        "personalized_coaching_analytics": (
            "📊 <b>Personalized coaching & analytics</b>\n\n"
            "Your analytics dashboard and coaching schedule will be shared in this chat by our team."
        ),
    }
)


def get_plan(plan_key: str | None) -> Plan | None:
    if not plan_key:
        return None
    return PLANS.get(plan_key.strip().lower())


def plan_to_json(plan: Plan) -> str:
    return json.dumps(asdict(plan), ensure_ascii=False)


def plan_from_json(raw: str | None) -> dict | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def plans_message() -> str:
    lines = [
        "🚀 <b>Boost your attendance to 90% and beyond!</b>",
        "",
        "Choose a program:",
        "",
    ]
    for plan in PLANS.values():
        lines.append(f"<b>{plan.name}</b> ({plan.price} Rs)")
        lines.append(f"  — {plan.description}")
        lines.append(f"  — Reply <code>/buy {plan.key}</code> to enroll.")
        lines.append("")
    lines.append("Type /status to check your current program details.")
    lines.append(f"You can also run <b>{FREE_LIMIT} free attendance checks</b> to see how it works!")
    lines.append("")
    lines.append("✨ Use /invite to earn unlimited checks and attendance boosts!")
    return "\n".join(lines)
