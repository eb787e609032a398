from datetime import date as date_type, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


JSON_TYPE = JSONB().with_variant(JSON, "sqlite")
MONEY = Numeric(12, 2)
RATE = Numeric(5, 2)

# DailyAnalytics.link_key for conversions without a link context.
NO_LINK_KEY = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Affiliate(Base):
    __tablename__ = "affiliates"
    __table_args__ = (Index("idx_affiliates_status", "status"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(20), default="affiliate")
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(RATE, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    links: Mapped[list["Link"]] = relationship(back_populates="affiliate")


class Link(Base):
    __tablename__ = "links"
    __table_args__ = (
        Index("idx_links_affiliate", "affiliate_id"),
        Index("idx_links_status", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    affiliate_id: Mapped[int] = mapped_column(ForeignKey("affiliates.id"))
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    url: Mapped[str] = mapped_column(String(2048))
    status: Mapped[str] = mapped_column(String(20), default="active")
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(RATE, nullable=True)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    conversions: Mapped[int] = mapped_column(Integer, default=0)
    revenue: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    affiliate: Mapped["Affiliate"] = relationship(back_populates="links")


class ClickEvent(Base):
    __tablename__ = "click_events"
    __table_args__ = (
        Index("idx_click_events_link_timestamp", "link_id", "timestamp"),
        Index("idx_click_events_affiliate", "affiliate_id"),
        Index("idx_click_events_suspicious", "is_bot", "fraud_score"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    link_id: Mapped[int] = mapped_column(ForeignKey("links.id"))
    affiliate_id: Mapped[int] = mapped_column(ForeignKey("affiliates.id"))
    ip: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    referrer: Mapped[Optional[str]] = mapped_column(Text)
    device_type: Mapped[Optional[str]] = mapped_column(String(20))
    is_bot: Mapped[bool] = mapped_column(Boolean, default=False)
    bot_type: Mapped[Optional[str]] = mapped_column(String(64))
    fraud_score: Mapped[int] = mapped_column(Integer, default=0)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)


class DailyAnalytics(Base):
    __tablename__ = "daily_analytics"
    __table_args__ = (
        UniqueConstraint("date", "link_key", "affiliate_id", name="uq_daily_analytics_date_link_affiliate"),
        Index("idx_daily_analytics_affiliate_date", "affiliate_id", "date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[date_type] = mapped_column(Date)
    link_key: Mapped[int] = mapped_column(Integer, default=NO_LINK_KEY)
    link_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("links.id", ondelete="SET NULL"), nullable=True
    )
    affiliate_id: Mapped[int] = mapped_column(ForeignKey("affiliates.id"))
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    conversions: Mapped[int] = mapped_column(Integer, default=0)
    revenue: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")


class Commission(Base):
    __tablename__ = "commissions"
    __table_args__ = (
        Index("idx_commissions_affiliate_status", "affiliate_id", "status"),
        Index("idx_commissions_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    affiliate_id: Mapped[int] = mapped_column(ForeignKey("affiliates.id"))
    link_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("links.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY)
    sale_amount: Mapped[Decimal] = mapped_column(MONEY)
    rate_used: Mapped[Decimal] = mapped_column(RATE)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    unique_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    stripe_charge_id: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reverse_reason: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    reverse_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class Payout(Base):
    __tablename__ = "payouts"
    __table_args__ = (Index("idx_payouts_affiliate_status", "affiliate_id", "status"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    affiliate_id: Mapped[int] = mapped_column(ForeignKey("affiliates.id"))
    amount: Mapped[Decimal] = mapped_column(MONEY)
    method: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(20), default="pending")
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_logs_action", "action"),
        Index("idx_audit_logs_target", "target_type", "target_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    admin_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("affiliates.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(64))
    target_type: Mapped[Optional[str]] = mapped_column(String(32))
    target_id: Mapped[Optional[int]] = mapped_column(Integer)
    details: Mapped[Optional[dict]] = mapped_column(JSON_TYPE)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
