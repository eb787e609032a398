from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.schemas import RefundRequest, ReversalResponse, WebhookAckResponse
from linkpay.routes.deps import get_principal
from linkpay.services.auth import Principal, require_admin
from linkpay.services.database import get_db
from linkpay.services.reversals import reverse_commission
from linkpay.services.stripe_events import construct_stripe_event, handle_stripe_event


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post(
    "/stripe",
    response_model=WebhookAckResponse,
    response_model_by_alias=True,
    summary="Receive Stripe events (checkout, refunds, disputes)",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
):
    payload = await request.body()
    event = construct_stripe_event(payload, stripe_signature)
    outcome = await handle_stripe_event(db, event)
    return WebhookAckResponse(status=outcome["status"], reason=outcome.get("reason"))


@router.post(
    "/refunds",
    response_model=ReversalResponse,
    response_model_by_alias=True,
    summary="Reverse the commission for a refunded or disputed charge",
)
async def refund_webhook(
    body: RefundRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    require_admin(principal, "recording refunds")
    result = await reverse_commission(
        db,
        charge_id=body.chargeId,
        refund_amount=body.refundAmount,
        reason=body.reason,
        original_amount=body.originalAmount,
        charge_reference=body.chargeReference,
        admin_id=principal.id,
    )
    return ReversalResponse(
        status=result.status,
        commissionId=result.commission.id if result.commission else None,
        reverseAmount=float(result.reverse_amount),
        refundProportion=float(result.refund_proportion),
    )
