from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.schemas import BalanceResponse, PayoutListResponse, PayoutRequest, PayoutSchema
from linkpay.routes.deps import get_principal
from linkpay.services.auth import Principal
from linkpay.services.balance import available_balance
from linkpay.services.database import get_db
from linkpay.services.payouts import list_payouts, payout_to_payload, request_payout


router = APIRouter(prefix="/api/payouts", tags=["Payouts"])


@router.get(
    "",
    response_model=PayoutListResponse,
    response_model_by_alias=True,
    summary="List payouts with the caller's available balance",
)
async def payouts_index(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    payouts = await list_payouts(db, principal)
    balance = await available_balance(db, principal.id)
    return PayoutListResponse(
        payouts=[PayoutSchema.model_validate(payout_to_payload(payout)) for payout in payouts],
        availableBalance=float(balance),
    )


@router.get(
    "/balance",
    response_model=BalanceResponse,
    response_model_by_alias=True,
    summary="Get available balance",
)
async def payouts_balance(
    affiliate_id: Optional[int] = Query(None, alias="affiliateId"),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    # Admins may look at any affiliate; everyone else sees their own balance.
    target = affiliate_id if principal.is_admin and affiliate_id is not None else principal.id
    balance = await available_balance(db, target)
    return BalanceResponse(affiliateId=target, availableBalance=float(balance))


@router.post(
    "",
    response_model=PayoutSchema,
    response_model_by_alias=True,
    status_code=201,
    summary="Request a payout from the available balance",
)
async def payouts_create(
    body: PayoutRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    payout = await request_payout(db, principal.id, body.amount, body.method)
    return PayoutSchema.model_validate(payout_to_payload(payout))
