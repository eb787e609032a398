from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.schemas import LinkCreateRequest, LinkSchema, LinkStatusRequest
from linkpay.routes.deps import get_principal
from linkpay.services.auth import Principal
from linkpay.services.database import get_db
from linkpay.services.links import create_link, link_to_payload, list_links, set_link_status


router = APIRouter(prefix="/api/links", tags=["Links"])


@router.get(
    "",
    response_model=List[LinkSchema],
    response_model_by_alias=True,
    summary="List tracked links (own, or all for admins)",
)
async def links_index(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    links = await list_links(db, principal)
    return [LinkSchema.model_validate(link_to_payload(link)) for link in links]


@router.post(
    "",
    response_model=LinkSchema,
    response_model_by_alias=True,
    status_code=201,
    summary="Create a tracked link",
)
async def links_create(
    body: LinkCreateRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    link = await create_link(
        db,
        principal=principal,
        name=body.name,
        url=body.url,
        slug=body.slug,
        affiliate_id=body.affiliateId,
        commission_rate=body.commissionRate,
    )
    return LinkSchema.model_validate(link_to_payload(link))


@router.put(
    "/{link_id}/status",
    response_model=LinkSchema,
    response_model_by_alias=True,
    summary="Activate or deactivate a tracked link",
)
async def links_set_status(
    body: LinkStatusRequest,
    link_id: int = Path(..., ge=1),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    link = await set_link_status(db, link_id, body.status, principal)
    return LinkSchema.model_validate(link_to_payload(link))
