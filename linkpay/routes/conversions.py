from __future__ import annotations

import logging
import secrets
import time

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.schemas import CommissionSchema, ConversionRequest, ConversionResponse
from linkpay.services.commissions import commission_to_payload, process_commission
from linkpay.services.database import get_db
from linkpay.services.errors import LedgerError, ValidationError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/track", tags=["Tracking"])

# The pixel is embedded on merchant sites, so any origin may call it.
PIXEL_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def generate_pixel_unique_id() -> str:
    return f"pixel_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


@router.options("/conversion", include_in_schema=False)
async def conversion_preflight() -> Response:
    return Response(status_code=204, headers=PIXEL_CORS_HEADERS)


@router.post(
    "/conversion",
    response_model=ConversionResponse,
    response_model_by_alias=True,
    summary="Record a sale from the conversion pixel",
)
async def track_conversion(
    body: ConversionRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    response.headers.update(PIXEL_CORS_HEADERS)
    try:
        if body.affiliateId is None or body.saleAmount is None:
            raise ValidationError("Missing required fields: affiliateId, saleAmount")
        result = await process_commission(
            db,
            affiliate_id=body.affiliateId,
            link_id=body.linkId,
            sale_amount=body.saleAmount,
            unique_id=body.uniqueId or generate_pixel_unique_id(),
            charge_id=body.chargeId,
            description=body.description or "Commission via conversion pixel",
            source="Pixel",
        )
    except LedgerError as exc:
        logger.info("Conversion rejected: %s", exc.message)
        return JSONResponse(status_code=400, content={"detail": exc.message}, headers=PIXEL_CORS_HEADERS)

    return ConversionResponse(
        success=True,
        status=result.status,
        commission=CommissionSchema.model_validate(commission_to_payload(result.commission)),
    )
