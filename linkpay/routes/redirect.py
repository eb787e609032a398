from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.config import settings
from linkpay.services.attribution import RequestMetadata, find_active_link_by_slug, record_click
from linkpay.services.database import get_db
from linkpay.services.fraud import get_rate_limiter, score_click


logger = logging.getLogger(__name__)

router = APIRouter(tags=["Redirect"])

AFFILIATE_COOKIE = "affiliate_id"
LINK_COOKIE = "link_id"


class CookieAttributionSink:
    """Collects the attribution to write as cookies on the redirect response."""

    def __init__(self) -> None:
        self.affiliate_id: Optional[int] = None
        self.link_id: Optional[int] = None
        self.ttl: Optional[timedelta] = None

    def establish(self, affiliate_id: int, link_id: int, ttl: timedelta) -> None:
        self.affiliate_id = affiliate_id
        self.link_id = link_id
        self.ttl = ttl

    def apply(self, response: RedirectResponse) -> None:
        if self.affiliate_id is None or self.ttl is None:
            return
        max_age = int(self.ttl.total_seconds())
        for key, value in ((AFFILIATE_COOKIE, self.affiliate_id), (LINK_COOKIE, self.link_id)):
            response.set_cookie(
                key=key,
                value=str(value),
                max_age=max_age,
                path="/",
                httponly=True,
                samesite="lax",
                secure=settings.attribution_cookie_secure,
            )


@router.get("/r/{slug}", summary="Resolve a tracked link and redirect")
async def follow_link(
    request: Request,
    slug: str = Path(..., description="Tracked link slug"),
    db: AsyncSession = Depends(get_db),
):
    link = await find_active_link_by_slug(db, slug)
    if link is None:
        raise HTTPException(status_code=404, detail="Link not found")

    destination = link.url
    sink = CookieAttributionSink()
    metadata = RequestMetadata.from_headers(request.headers, request.client.host if request.client else None)
    try:
        verdict = score_click(metadata.user_agent, metadata.ip, get_rate_limiter())
        await record_click(db, link, metadata, verdict, sink)
    except Exception as exc:
        # Tracking is best-effort; the visitor is redirected regardless.
        logger.exception("Click tracking failed for link %s: %s", slug, exc)
        await db.rollback()

    response = RedirectResponse(url=destination, status_code=307)
    sink.apply(response)
    return response
