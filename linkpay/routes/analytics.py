from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.schemas import (
    AnalyticsResponseSchema,
    FunnelResponseSchema,
    LeaderboardResponseSchema,
)
from linkpay.routes.deps import get_principal
from linkpay.services.analytics import (
    DEFAULT_RANGE,
    LEADERBOARD_LIMIT,
    get_analytics_summary,
    get_funnel,
    get_leaderboard,
)
from linkpay.services.auth import Principal
from linkpay.services.database import get_db


router = APIRouter(prefix="/api/analytics", tags=["Analytics"])

RANGE_PATTERN = "^(7d|30d|90d|all)$"


@router.get(
    "",
    response_model=AnalyticsResponseSchema,
    response_model_by_alias=True,
    summary="Clicks, conversions and revenue over a date range",
)
async def analytics_summary(
    range_key: str = Query(DEFAULT_RANGE, alias="range", pattern=RANGE_PATTERN),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    affiliate_id = None if principal.is_admin else principal.id
    payload = await get_analytics_summary(db, affiliate_id, range_key)
    return AnalyticsResponseSchema.model_validate(payload)


@router.get(
    "/leaderboard",
    response_model=LeaderboardResponseSchema,
    response_model_by_alias=True,
    summary="Affiliates ranked by revenue",
)
async def analytics_leaderboard(
    range_key: str = Query(DEFAULT_RANGE, alias="range", pattern=RANGE_PATTERN),
    limit: int = Query(LEADERBOARD_LIMIT, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    payload = await get_leaderboard(db, range_key, limit=limit)
    return LeaderboardResponseSchema.model_validate(payload)


@router.get(
    "/funnel",
    response_model=FunnelResponseSchema,
    response_model_by_alias=True,
    summary="Click to conversion funnel with campaign breakdown",
)
async def analytics_funnel(
    range_key: str = Query(DEFAULT_RANGE, alias="range", pattern=RANGE_PATTERN),
    affiliate_id: Optional[int] = Query(None, alias="affiliateId", ge=1),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    if not principal.is_admin:
        affiliate_id = principal.id
    payload = await get_funnel(db, affiliate_id, range_key)
    return FunnelResponseSchema.model_validate(payload)
