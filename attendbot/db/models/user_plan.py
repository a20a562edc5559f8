from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from attendbot.db.base import Base


class UserPlan(Base):
    __tablename__ = "user_plans"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    checks_used: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    # plan_expires_at / plan_details are stale whenever plan_active is false
    plan_active: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false(), nullable=False)
    plan_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # JSON snapshot of the purchased plan
    plan_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    hidden_feature_unlocked: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false(), nullable=False)
