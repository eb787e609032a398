from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.config import settings
from linkpay.models.database import Affiliate
from linkpay.services.audit import record_audit
from linkpay.services.auth import AFFILIATE_ROLE, Principal, require_admin
from linkpay.services.errors import AffiliateNotFoundError, ValidationError


logger = logging.getLogger(__name__)

AFFILIATE_STATUSES = ("pending", "active", "suspended", "inactive")


def validate_rate(rate: Optional[Decimal]) -> Optional[Decimal]:
    if rate is None:
        return None
    if rate < 0 or rate > 100:
        raise ValidationError("Commission rate must be between 0 and 100")
    return rate


def affiliate_to_payload(affiliate: Affiliate) -> dict:
    return {
        "id": affiliate.id,
        "name": affiliate.name,
        "email": affiliate.email,
        "role": affiliate.role,
        "status": affiliate.status,
        "commission_rate": affiliate.commission_rate,
        "created_at": affiliate.created_at,
    }


async def find_affiliate(db: AsyncSession, affiliate_id: int, *, for_update: bool = False) -> Optional[Affiliate]:
    query = select(Affiliate).where(Affiliate.id == affiliate_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_affiliate(db: AsyncSession, affiliate_id: int) -> Affiliate:
    affiliate = await find_affiliate(db, affiliate_id)
    if affiliate is None:
        raise AffiliateNotFoundError(affiliate_id)
    return affiliate


async def create_affiliate(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    principal: Principal,
    commission_rate: Optional[Decimal] = None,
    status: str = "pending",
    role: str = AFFILIATE_ROLE,
) -> Affiliate:
    require_admin(principal, "creating affiliates")
    if not name.strip() or "@" not in email:
        raise ValidationError("Name and a valid email are required")
    if status not in AFFILIATE_STATUSES:
        raise ValidationError(f"Invalid affiliate status: {status}")

    affiliate = Affiliate(
        name=name.strip(),
        email=email.strip().lower(),
        role=role,
        commission_rate=validate_rate(commission_rate)
        if commission_rate is not None
        else settings.default_commission_rate,
        status=status,
    )
    db.add(affiliate)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise ValidationError("Email already in use") from exc

    record_audit(
        db,
        action="CREATE_AFFILIATE",
        target_type="Affiliate",
        target_id=affiliate.id,
        details={"email": affiliate.email, "status": affiliate.status},
        admin_id=principal.id,
    )
    await db.commit()
    await db.refresh(affiliate)
    return affiliate


async def update_affiliate(
    db: AsyncSession,
    affiliate_id: int,
    *,
    principal: Principal,
    status: Optional[str] = None,
    commission_rate: Optional[Decimal] = None,
    clear_commission_rate: bool = False,
) -> Affiliate:
    require_admin(principal, "updating affiliates")
    affiliate = await get_affiliate(db, affiliate_id)

    before = {"status": affiliate.status, "commission_rate": _rate_str(affiliate.commission_rate)}
    if status is not None:
        if status not in AFFILIATE_STATUSES:
            raise ValidationError(f"Invalid affiliate status: {status}")
        affiliate.status = status
    if clear_commission_rate:
        affiliate.commission_rate = None
    elif commission_rate is not None:
        affiliate.commission_rate = validate_rate(commission_rate)

    record_audit(
        db,
        action="UPDATE_AFFILIATE",
        target_type="Affiliate",
        target_id=affiliate.id,
        details={
            "before": before,
            "after": {"status": affiliate.status, "commission_rate": _rate_str(affiliate.commission_rate)},
        },
        admin_id=principal.id,
    )
    await db.commit()
    await db.refresh(affiliate)
    logger.info("Affiliate %s updated by admin %s", affiliate.id, principal.id)
    return affiliate


def _rate_str(rate: Optional[Decimal]) -> Optional[str]:
    return str(rate) if rate is not None else None
