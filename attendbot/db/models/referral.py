from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from attendbot.core.time import utcnow
from attendbot.db.base import Base

REWARD_PENDING = "pending"
REWARD_REWARDED = "rewarded"
REWARD_REVOKED = "revoked"
REWARD_FAILED = "failed"


class Referral(Base):
    """Referral relationship.

    Created once, when a brand-new user opens the bot through someone's invite link.
    """

    __tablename__ = "referrals"
    __table_args__ = (UniqueConstraint("referred_user_id", name="uq_referrals_referred"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    referrer_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    referred_user_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)

    reward_status: Mapped[str] = mapped_column(String(16), default=REWARD_PENDING, server_default=REWARD_PENDING, nullable=False)
    reward_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_type: Mapped[str] = mapped_column(String(32), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
