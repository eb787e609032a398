from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.schemas import (
    AdminStatsSchema,
    AffiliateCreateRequest,
    AffiliateSchema,
    AffiliateUpdateRequest,
    AuditLogSchema,
    CommissionRejectRequest,
    CommissionSchema,
    FraudReportSchema,
    PayoutSchema,
    PayoutStatusRequest,
)
from linkpay.routes.deps import get_principal
from linkpay.services.affiliates import affiliate_to_payload, create_affiliate, update_affiliate
from linkpay.services.analytics import get_admin_stats
from linkpay.services.audit import list_audit_logs
from linkpay.services.auth import Principal, require_admin
from linkpay.services.commissions import approve_commission, commission_to_payload, reject_commission
from linkpay.services.database import get_db
from linkpay.services.fraud_report import get_fraud_report
from linkpay.services.payouts import payout_to_payload, set_payout_status


router = APIRouter(prefix="/admin", tags=["Admin"])


def get_admin(principal: Principal = Depends(get_principal)) -> Principal:
    return require_admin(principal, "admin endpoints")


@router.post("/affiliates", response_model=AffiliateSchema, response_model_by_alias=True, status_code=201)
async def admin_create_affiliate(
    body: AffiliateCreateRequest,
    admin: Principal = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    affiliate = await create_affiliate(
        db,
        name=body.name,
        email=body.email,
        principal=admin,
        commission_rate=body.commissionRate,
        status=body.status,
    )
    return AffiliateSchema.model_validate(affiliate_to_payload(affiliate))


@router.put("/affiliates/{affiliate_id}", response_model=AffiliateSchema, response_model_by_alias=True)
async def admin_update_affiliate(
    body: AffiliateUpdateRequest,
    affiliate_id: int = Path(..., ge=1),
    admin: Principal = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    clear_rate = "commissionRate" in body.model_fields_set and body.commissionRate is None
    affiliate = await update_affiliate(
        db,
        affiliate_id,
        principal=admin,
        status=body.status,
        commission_rate=body.commissionRate,
        clear_commission_rate=clear_rate,
    )
    return AffiliateSchema.model_validate(affiliate_to_payload(affiliate))


@router.post(
    "/commissions/{commission_id}/approve",
    response_model=CommissionSchema,
    response_model_by_alias=True,
)
async def admin_approve_commission(
    commission_id: int = Path(..., ge=1),
    admin: Principal = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    commission = await approve_commission(db, commission_id, admin)
    return CommissionSchema.model_validate(commission_to_payload(commission))


@router.post(
    "/commissions/{commission_id}/reject",
    response_model=CommissionSchema,
    response_model_by_alias=True,
)
async def admin_reject_commission(
    body: Optional[CommissionRejectRequest] = None,
    commission_id: int = Path(..., ge=1),
    admin: Principal = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    commission = await reject_commission(db, commission_id, admin, reason=body.reason if body else None)
    return CommissionSchema.model_validate(commission_to_payload(commission))


@router.put("/payouts/{payout_id}", response_model=PayoutSchema, response_model_by_alias=True)
async def admin_update_payout(
    body: PayoutStatusRequest,
    payout_id: int = Path(..., ge=1),
    admin: Principal = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    payout = await set_payout_status(db, payout_id, body.status, admin, transaction_id=body.transactionId)
    return PayoutSchema.model_validate(payout_to_payload(payout))


@router.get("/fraud", response_model=FraudReportSchema, response_model_by_alias=True)
async def admin_fraud_report(
    admin: Principal = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    payload = await get_fraud_report(db)
    return FraudReportSchema.model_validate(payload)


@router.get("/audit-logs", response_model=List[AuditLogSchema], response_model_by_alias=True)
async def admin_audit_logs(
    action: Optional[str] = Query(None),
    target_type: Optional[str] = Query(None, alias="targetType"),
    limit: int = Query(50, ge=1, le=500),
    admin: Principal = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_audit_logs(db, action=action, target_type=target_type, limit=limit)
    return [AuditLogSchema.model_validate(row) for row in rows]


@router.get("/stats", response_model=AdminStatsSchema, response_model_by_alias=True)
async def admin_stats(
    admin: Principal = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    payload = await get_admin_stats(db)
    return AdminStatsSchema.model_validate(payload)
