"""Commission reversal for refunds and disputes.

The status change is a single conditional UPDATE (``status != 'reversed'``), so
of two concurrent reversals of the same charge only one changes a row; the
other reports ``already_reversed``. Aggregate corrections are posted to the
bucket of the day the reversal happens, not the day of the original sale.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.database import Commission
from linkpay.services.aggregates import increment_link_counters, upsert_daily_analytics, utc_today
from linkpay.services.audit import record_audit
from linkpay.services.errors import ValidationError


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ONE = Decimal("1")

STATUS_REVERSED = "reversed"
STATUS_NOT_FOUND = "commission_not_found"
STATUS_ALREADY_REVERSED = "already_reversed"

REVERSAL_REASONS = ("refund", "dispute", "chargeback", "manual")


@dataclass
class ReversalResult:
    status: str
    commission: Optional[Commission] = None
    reverse_amount: Decimal = Decimal("0")
    refund_proportion: Decimal = Decimal("0")


async def find_commission_for_charge(
    db: AsyncSession,
    charge_id: str,
    charge_reference: Optional[str] = None,
) -> Optional[Commission]:
    result = await db.execute(
        select(Commission).where(Commission.stripe_charge_id == charge_id).order_by(Commission.id).limit(1)
    )
    commission = result.scalar_one_or_none()
    if commission is not None or not charge_reference:
        return commission

    result = await db.execute(
        select(Commission)
        .where(
            or_(
                Commission.stripe_charge_id == charge_reference,
                Commission.unique_id.contains(charge_reference, autoescape=True),
            )
        )
        .order_by(Commission.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


def refund_proportion(refund_amount: Decimal, original_amount: Decimal) -> Decimal:
    if original_amount <= 0:
        return ONE
    return min(refund_amount / original_amount, ONE)


async def reverse_commission(
    db: AsyncSession,
    *,
    charge_id: str,
    refund_amount: Decimal,
    reason: str,
    original_amount: Optional[Decimal] = None,
    charge_reference: Optional[str] = None,
    today: Optional[date] = None,
    admin_id: Optional[int] = None,
) -> ReversalResult:
    refund = Decimal(str(refund_amount))
    if refund <= 0:
        raise ValidationError("Refund amount must be greater than zero")
    if not charge_id:
        raise ValidationError("Charge id is required")
    if reason not in REVERSAL_REASONS:
        raise ValidationError(f"Unknown reversal reason: {reason}")

    commission = await find_commission_for_charge(db, charge_id, charge_reference)
    if commission is None:
        logger.info("No commission found for charge %s; reversal skipped", charge_id)
        return ReversalResult(status=STATUS_NOT_FOUND)
    if commission.status == STATUS_REVERSED:
        logger.info("Commission %s already reversed; charge %s ignored", commission.id, charge_id)
        return ReversalResult(status=STATUS_ALREADY_REVERSED, commission=commission)

    original = Decimal(str(original_amount)) if original_amount else Decimal(str(commission.sale_amount))
    proportion = refund_proportion(refund, original)
    reverse_amount = (Decimal(str(commission.amount)) * proportion).quantize(CENT, rounding=ROUND_HALF_UP)
    full_refund = proportion >= ONE

    result = await db.execute(
        update(Commission)
        .where(Commission.id == commission.id, Commission.status != STATUS_REVERSED)
        .values(
            status=STATUS_REVERSED,
            reversed_at=datetime.now(timezone.utc),
            reverse_reason=reason,
            reverse_amount=reverse_amount,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        await db.refresh(commission)
        logger.info("Commission %s reversed concurrently; charge %s ignored", commission.id, charge_id)
        return ReversalResult(status=STATUS_ALREADY_REVERSED, commission=commission)

    conversions_delta = -1 if full_refund else 0
    await upsert_daily_analytics(
        db,
        affiliate_id=commission.affiliate_id,
        link_id=commission.link_id,
        day=today or utc_today(),
        conversions=conversions_delta,
        revenue=-refund,
    )
    if commission.link_id is not None:
        await increment_link_counters(db, commission.link_id, conversions=conversions_delta, revenue=-refund)

    record_audit(
        db,
        action="COMMISSION_REVERSED",
        target_type="Commission",
        target_id=commission.id,
        details={
            "charge_id": charge_id,
            "reason": reason,
            "refund_amount": str(refund),
            "reverse_amount": str(reverse_amount),
            "proportion": str(proportion),
        },
        admin_id=admin_id,
    )
    await db.commit()
    await db.refresh(commission)

    logger.info(
        "Commission %s reversed (%s): %s of %s, proportion %s",
        commission.id,
        reason,
        reverse_amount,
        commission.amount,
        proportion,
    )
    return ReversalResult(
        status=STATUS_REVERSED,
        commission=commission,
        reverse_amount=reverse_amount,
        refund_proportion=proportion,
    )
