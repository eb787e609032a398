from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.database import Commission, Payout


CENT = Decimal("0.01")


async def approved_earnings(db: AsyncSession, affiliate_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Commission.amount), 0)).where(
            Commission.affiliate_id == affiliate_id,
            Commission.status == "approved",
        )
    )
    return Decimal(str(result.scalar_one())).quantize(CENT)


async def committed_payouts(db: AsyncSession, affiliate_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Payout.amount), 0)).where(
            Payout.affiliate_id == affiliate_id,
            Payout.status != "rejected",
        )
    )
    return Decimal(str(result.scalar_one())).quantize(CENT)


async def available_balance(db: AsyncSession, affiliate_id: int) -> Decimal:
    """Approved commissions minus every payout that has not been rejected.

    Derived on each call; nothing about the balance is stored.
    """
    earned = await approved_earnings(db, affiliate_id)
    paid_or_pending = await committed_payouts(db, affiliate_id)
    return earned - paid_or_pending
