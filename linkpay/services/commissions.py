"""Commission ledger: one commission per sale event, with rate resolution.

A sale event is identified by its ``unique_id``. The unique constraint on that
column is what makes ingestion idempotent: a second insert of the same key
fails, the transaction is rolled back, and the existing commission is
returned as ``skipped_duplicate`` without touching any aggregate.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.config import settings
from linkpay.models.database import Commission, Link
from linkpay.services.aggregates import increment_link_counters, upsert_daily_analytics
from linkpay.services.affiliates import find_affiliate
from linkpay.services.audit import record_audit
from linkpay.services.auth import Principal, require_admin
from linkpay.services.errors import (
    AffiliateNotFoundError,
    CommissionNotFoundError,
    InvalidTransitionError,
    ValidationError,
)
from linkpay.services.notifications import Notifier, get_notifier, notify_safely


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

STATUS_CREATED = "created"
STATUS_SKIPPED_DUPLICATE = "skipped_duplicate"


def to_money(value: Decimal | float | int | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_commission_rate(
    link_rate: Optional[Decimal],
    affiliate_rate: Optional[Decimal],
    default: Optional[Decimal] = None,
) -> Decimal:
    """Link override, then affiliate rate, then the global default.

    Zero or missing rates fall through to the next level.
    """
    for candidate in (link_rate, affiliate_rate):
        if candidate:
            return Decimal(str(candidate))
    return Decimal(str(default if default is not None else settings.default_commission_rate))


def calculate_commission(sale_amount: Decimal, rate: Decimal) -> Decimal:
    return (Decimal(str(sale_amount)) * Decimal(str(rate)) / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class CommissionResult:
    status: str
    commission: Commission

    @property
    def created(self) -> bool:
        return self.status == STATUS_CREATED


def commission_to_payload(commission: Commission) -> dict:
    return {
        "id": commission.id,
        "affiliate_id": commission.affiliate_id,
        "link_id": commission.link_id,
        "amount": commission.amount,
        "sale_amount": commission.sale_amount,
        "rate_used": commission.rate_used,
        "currency": commission.currency,
        "description": commission.description,
        "status": commission.status,
        "unique_id": commission.unique_id,
        "stripe_charge_id": commission.stripe_charge_id,
        "approved_at": commission.approved_at,
        "reversed_at": commission.reversed_at,
        "reverse_reason": commission.reverse_reason,
        "reverse_amount": commission.reverse_amount,
        "created_at": commission.created_at,
    }


async def find_commission_by_unique_id(db: AsyncSession, unique_id: str) -> Optional[Commission]:
    result = await db.execute(select(Commission).where(Commission.unique_id == unique_id))
    return result.scalar_one_or_none()


async def process_commission(
    db: AsyncSession,
    *,
    affiliate_id: int,
    sale_amount: Decimal,
    unique_id: Optional[str],
    link_id: Optional[int] = None,
    description: Optional[str] = None,
    charge_id: Optional[str] = None,
    source: str = "Referral",
    currency: str = "USD",
    notifier: Optional[Notifier] = None,
) -> CommissionResult:
    sale = Decimal(str(sale_amount)) if sale_amount is not None else Decimal("0")
    if sale <= 0:
        raise ValidationError("Sale amount must be greater than zero")
    sale = to_money(sale)

    affiliate = await find_affiliate(db, affiliate_id)
    if affiliate is None:
        raise AffiliateNotFoundError(affiliate_id)

    link: Optional[Link] = None
    if link_id is not None:
        link = await db.get(Link, link_id)
        if link is None:
            logger.info("Conversion for unknown link %s recorded without link context", link_id)

    rate = resolve_commission_rate(link.commission_rate if link else None, affiliate.commission_rate)
    amount = calculate_commission(sale, rate)

    commission = Commission(
        affiliate_id=affiliate.id,
        link_id=link.id if link else None,
        amount=amount,
        sale_amount=sale,
        rate_used=rate,
        currency=currency,
        description=description or f"{source} commission",
        status="pending",
        unique_id=unique_id,
        stripe_charge_id=charge_id,
    )
    db.add(commission)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        if unique_id is None:
            raise
        existing = await find_commission_by_unique_id(db, unique_id)
        if existing is None:
            raise
        logger.info("Duplicate sale event %s skipped (commission %s)", unique_id, existing.id)
        return CommissionResult(status=STATUS_SKIPPED_DUPLICATE, commission=existing)

    if link is not None:
        await increment_link_counters(db, link.id, conversions=1, revenue=sale)
    await upsert_daily_analytics(
        db,
        affiliate_id=affiliate.id,
        link_id=link.id if link else None,
        conversions=1,
        revenue=sale,
    )
    await db.commit()
    await db.refresh(commission)

    logger.info(
        "Commission %s created for affiliate %s: %s on sale %s at %s%%",
        commission.id,
        affiliate.id,
        amount,
        sale,
        rate,
    )
    await notify_safely(
        (notifier or get_notifier()).commission_earned(affiliate, amount, source),
        "commission_earned",
    )
    return CommissionResult(status=STATUS_CREATED, commission=commission)


async def _get_commission(db: AsyncSession, commission_id: int) -> Commission:
    commission = await db.get(Commission, commission_id)
    if commission is None:
        raise CommissionNotFoundError(commission_id)
    return commission


async def approve_commission(db: AsyncSession, commission_id: int, principal: Principal) -> Commission:
    require_admin(principal, "approving commissions")
    commission = await _get_commission(db, commission_id)
    if commission.status == "approved":
        return commission
    if commission.status != "pending":
        raise InvalidTransitionError("commission", commission.status, "approved")

    result = await db.execute(
        update(Commission)
        .where(Commission.id == commission_id, Commission.status == "pending")
        .values(status="approved", approved_at=datetime.now(timezone.utc))
    )
    if result.rowcount == 0:
        await db.rollback()
        await db.refresh(commission)
        if commission.status == "approved":
            return commission
        raise InvalidTransitionError("commission", commission.status, "approved")

    record_audit(
        db,
        action="APPROVE_COMMISSION",
        target_type="Commission",
        target_id=commission_id,
        details={"amount": str(commission.amount)},
        admin_id=principal.id,
    )
    await db.commit()
    await db.refresh(commission)
    return commission


async def reject_commission(
    db: AsyncSession,
    commission_id: int,
    principal: Principal,
    reason: Optional[str] = None,
) -> Commission:
    require_admin(principal, "rejecting commissions")
    commission = await _get_commission(db, commission_id)
    if commission.status == "rejected":
        return commission

    result = await db.execute(
        update(Commission)
        .where(Commission.id == commission_id, Commission.status == "pending")
        .values(status="rejected")
    )
    if result.rowcount == 0:
        await db.rollback()
        await db.refresh(commission)
        raise InvalidTransitionError("commission", commission.status, "rejected")

    record_audit(
        db,
        action="REJECT_COMMISSION",
        target_type="Commission",
        target_id=commission_id,
        details={"amount": str(commission.amount), "reason": reason},
        admin_id=principal.id,
    )
    await db.commit()
    await db.refresh(commission)
    return commission


async def approve_matured_commissions(
    db: AsyncSession,
    older_than_days: int,
    now: Optional[datetime] = None,
) -> int:
    """Approve pending commissions created before the holding window."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)
    result = await db.execute(
        update(Commission)
        .where(Commission.status == "pending", Commission.created_at < cutoff)
        .values(status="approved", approved_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    approved = result.rowcount or 0
    if approved:
        record_audit(
            db,
            action="AUTO_APPROVE_COMMISSIONS",
            target_type="Commission",
            details={"count": approved, "older_than_days": older_than_days},
        )
    await db.commit()
    logger.info("Auto-approved %s commissions older than %s days", approved, older_than_days)
    return approved
