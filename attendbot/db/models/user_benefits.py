from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, String, false
from sqlalchemy.orm import Mapped, mapped_column

from attendbot.db.base import Base


class UserBenefits(Base):
    __tablename__ = "user_benefits"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    unlimited_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    boost_subject_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    boost_subject_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    referral_benefit_received: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false(), nullable=False)
