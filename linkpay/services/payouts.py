"""Payout requests and their settlement lifecycle.

    pending ──> processing ──> completed | rejected
    pending ─────────────────> completed | rejected

A payout leaves the open states exactly once; the transition is a conditional
UPDATE on the previous status so two admins cannot both settle one payout.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.database import Affiliate, Payout
from linkpay.services.affiliates import find_affiliate
from linkpay.services.audit import record_audit
from linkpay.services.auth import Principal, require_admin
from linkpay.services.balance import available_balance
from linkpay.services.commissions import to_money
from linkpay.services.errors import (
    AffiliateNotFoundError,
    InsufficientBalanceError,
    InvalidTransitionError,
    PayoutNotFoundError,
    ValidationError,
)
from linkpay.services.notifications import Notifier, get_notifier, notify_safely


logger = logging.getLogger(__name__)

DEFAULT_METHOD = "Bank Transfer"
SETTLED_STATUSES = ("completed", "rejected")

ALLOWED_TRANSITIONS = {
    "pending": ("processing",) + SETTLED_STATUSES,
    "processing": SETTLED_STATUSES,
}


def payout_to_payload(payout: Payout) -> dict:
    return {
        "id": payout.id,
        "affiliate_id": payout.affiliate_id,
        "amount": payout.amount,
        "method": payout.method,
        "status": payout.status,
        "transaction_id": payout.transaction_id,
        "date": payout.date,
        "updated_at": payout.updated_at,
    }


async def request_payout(
    db: AsyncSession,
    affiliate_id: int,
    amount: Decimal,
    method: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> Payout:
    requested = to_money(amount) if amount is not None else Decimal("0")
    if requested <= 0:
        raise ValidationError("Payout amount must be greater than zero")

    # Row lock serialises concurrent requests for one affiliate where the backend supports it.
    affiliate = await find_affiliate(db, affiliate_id, for_update=True)
    if affiliate is None:
        raise AffiliateNotFoundError(affiliate_id)

    payout = Payout(
        affiliate_id=affiliate_id,
        amount=requested,
        method=(method or "").strip() or DEFAULT_METHOD,
        status="pending",
    )
    db.add(payout)
    # The insert takes the write lock on SQLite, so the balance below already
    # includes every payout committed before this one.
    await db.flush()

    remaining = await available_balance(db, affiliate_id)
    if remaining < 0:
        await db.rollback()
        raise InsufficientBalanceError(requested, remaining + requested)

    await db.commit()
    await db.refresh(payout)

    logger.info("Payout %s requested by affiliate %s: %s via %s", payout.id, affiliate_id, requested, payout.method)
    await notify_safely((notifier or get_notifier()).payout_requested(affiliate, requested), "payout_requested")
    return payout


async def set_payout_status(
    db: AsyncSession,
    payout_id: int,
    new_status: str,
    principal: Principal,
    transaction_id: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> Payout:
    require_admin(principal, "updating payouts")
    if new_status not in ("processing",) + SETTLED_STATUSES:
        raise ValidationError(f"Invalid payout status: {new_status}")

    payout = await db.get(Payout, payout_id)
    if payout is None:
        raise PayoutNotFoundError(payout_id)
    previous = payout.status
    if new_status not in ALLOWED_TRANSITIONS.get(previous, ()):
        raise InvalidTransitionError("payout", previous, new_status)

    values = {"status": new_status}
    if transaction_id:
        values["transaction_id"] = transaction_id
    result = await db.execute(
        update(Payout).where(Payout.id == payout_id, Payout.status == previous).values(**values)
    )
    if result.rowcount == 0:
        await db.rollback()
        await db.refresh(payout)
        raise InvalidTransitionError("payout", payout.status, new_status)

    record_audit(
        db,
        action="PAYOUT_STATUS_CHANGED",
        target_type="Payout",
        target_id=payout_id,
        details={
            "before": previous,
            "after": new_status,
            "amount": str(payout.amount),
            "transaction_id": transaction_id,
        },
        admin_id=principal.id,
    )
    await db.commit()
    await db.refresh(payout)
    logger.info("Payout %s moved %s -> %s by admin %s", payout_id, previous, new_status, principal.id)

    affiliate = await db.get(Affiliate, payout.affiliate_id)
    if affiliate is not None:
        await notify_safely(
            (notifier or get_notifier()).payout_status_changed(affiliate, payout.amount, new_status),
            "payout_status_changed",
        )
    return payout


async def list_payouts(db: AsyncSession, principal: Principal) -> list[Payout]:
    query = select(Payout).order_by(Payout.date.desc(), Payout.id.desc())
    if not principal.is_admin:
        query = query.where(Payout.affiliate_id == principal.id)
    result = await db.execute(query)
    return list(result.scalars().all())
