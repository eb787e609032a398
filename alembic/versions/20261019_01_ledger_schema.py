"""Affiliates, tracked links, clicks, daily rollup, commissions and payouts

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19 09:00:00
"""
from alembic import op
import sqlalchemy as sa


MONEY = sa.Numeric(12, 2)
RATE = sa.Numeric(5, 2)
NOW = sa.func.current_timestamp()

# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "affiliates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="affiliate"),
        sa.Column("commission_rate", RATE, nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
    )
    op.create_index("ix_affiliates_email", "affiliates", ["email"], unique=True)
    op.create_index("idx_affiliates_status", "affiliates", ["status"], unique=False)

    op.create_table(
        "links",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("affiliate_id", sa.Integer(), sa.ForeignKey("affiliates.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("commission_rate", RATE, nullable=True),
        sa.Column("clicks", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("conversions", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("revenue", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
    )
    op.create_index("ix_links_slug", "links", ["slug"], unique=True)
    op.create_index("idx_links_affiliate", "links", ["affiliate_id"], unique=False)
    op.create_index("idx_links_status", "links", ["status"], unique=False)

    op.create_table(
        "click_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("link_id", sa.Integer(), sa.ForeignKey("links.id"), nullable=False),
        sa.Column("affiliate_id", sa.Integer(), sa.ForeignKey("affiliates.id"), nullable=False),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("device_type", sa.String(length=20), nullable=True),
        sa.Column("is_bot", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("bot_type", sa.String(length=64), nullable=True),
        sa.Column("fraud_score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
    )
    op.create_index("ix_click_events_timestamp", "click_events", ["timestamp"], unique=False)
    op.create_index("idx_click_events_link_timestamp", "click_events", ["link_id", "timestamp"], unique=False)
    op.create_index("idx_click_events_affiliate", "click_events", ["affiliate_id"], unique=False)
    op.create_index("idx_click_events_suspicious", "click_events", ["is_bot", "fraud_score"], unique=False)

    op.create_table(
        "daily_analytics",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("link_key", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "link_id",
            sa.Integer(),
            sa.ForeignKey("links.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("affiliate_id", sa.Integer(), sa.ForeignKey("affiliates.id"), nullable=False),
        sa.Column("clicks", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("conversions", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("revenue", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.UniqueConstraint("date", "link_key", "affiliate_id", name="uq_daily_analytics_date_link_affiliate"),
    )
    op.create_index(
        "idx_daily_analytics_affiliate_date", "daily_analytics", ["affiliate_id", "date"], unique=False
    )

    op.create_table(
        "commissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("affiliate_id", sa.Integer(), sa.ForeignKey("affiliates.id"), nullable=False),
        sa.Column(
            "link_id",
            sa.Integer(),
            sa.ForeignKey("links.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("sale_amount", MONEY, nullable=False),
        sa.Column("rate_used", RATE, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("unique_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_charge_id", sa.String(length=255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reversed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reverse_reason", sa.String(length=32), nullable=True),
        sa.Column("reverse_amount", MONEY, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.UniqueConstraint("unique_id", name="uq_commissions_unique_id"),
    )
    op.create_index("ix_commissions_stripe_charge_id", "commissions", ["stripe_charge_id"], unique=False)
    op.create_index(
        "idx_commissions_affiliate_status", "commissions", ["affiliate_id", "status"], unique=False
    )
    op.create_index("idx_commissions_status_created", "commissions", ["status", "created_at"], unique=False)

    op.create_table(
        "payouts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("affiliate_id", sa.Integer(), sa.ForeignKey("affiliates.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("method", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("transaction_id", sa.String(length=255), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
    )
    op.create_index("idx_payouts_affiliate_status", "payouts", ["affiliate_id", "status"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_payouts_affiliate_status", table_name="payouts")
    op.drop_table("payouts")

    op.drop_index("idx_commissions_status_created", table_name="commissions")
    op.drop_index("idx_commissions_affiliate_status", table_name="commissions")
    op.drop_index("ix_commissions_stripe_charge_id", table_name="commissions")
    op.drop_table("commissions")

    op.drop_index("idx_daily_analytics_affiliate_date", table_name="daily_analytics")
    op.drop_table("daily_analytics")

    op.drop_index("idx_click_events_suspicious", table_name="click_events")
    op.drop_index("idx_click_events_affiliate", table_name="click_events")
    op.drop_index("idx_click_events_link_timestamp", table_name="click_events")
    op.drop_index("ix_click_events_timestamp", table_name="click_events")
    op.drop_table("click_events")

    op.drop_index("idx_links_status", table_name="links")
    op.drop_index("idx_links_affiliate", table_name="links")
    op.drop_index("ix_links_slug", table_name="links")
    op.drop_table("links")

    op.drop_index("idx_affiliates_status", table_name="affiliates")
    op.drop_index("ix_affiliates_email", table_name="affiliates")
    op.drop_table("affiliates")
