"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("tg_username", sa.String(length=64), nullable=True),
        sa.Column("first_name", sa.String(length=128), nullable=True),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "user_plans",
        sa.Column("user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("checks_used", sa.Integer(), server_default="0", nullable=False),
        sa.Column("plan_active", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("plan_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("plan_details", sa.Text(), nullable=True),
        sa.Column("hidden_feature_unlocked", sa.Boolean(), server_default=sa.false(), nullable=False),
    )

    op.create_table(
        "user_benefits",
        sa.Column("user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("unlimited_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("boost_subject_id", sa.String(length=64), nullable=True),
        sa.Column("boost_subject_name", sa.String(length=255), nullable=True),
        sa.Column("referral_benefit_received", sa.Boolean(), server_default=sa.false(), nullable=False),
    )

    op.create_table(
        "referrals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("referrer_id", sa.BigInteger(), nullable=False),
        sa.Column("referred_user_id", sa.BigInteger(), nullable=False),
        sa.Column("reward_status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("reward_amount", sa.Integer(), nullable=False),
        sa.Column("reward_type", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("referred_user_id", name="uq_referrals_referred"),
    )
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"], unique=False)
    op.create_index("ix_referrals_referred_user_id", "referrals", ["referred_user_id"], unique=False)

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(length=128), primary_key=True),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "courses",
        sa.Column("ordinal", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("external_id", sa.String(length=64), nullable=False, unique=True),
    )


def downgrade() -> None:
    op.drop_table("courses")
    op.drop_table("app_settings")
    op.drop_index("ix_referrals_referred_user_id", table_name="referrals")
    op.drop_index("ix_referrals_referrer_id", table_name="referrals")
    op.drop_table("referrals")
    op.drop_table("user_benefits")
    op.drop_table("user_plans")
    op.drop_table("users")
