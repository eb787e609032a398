from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Optional
from urllib.parse import urlsplit

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.database import Link
from linkpay.services.affiliates import find_affiliate, validate_rate
from linkpay.services.audit import record_audit
from linkpay.services.auth import Principal
from linkpay.services.errors import (
    AffiliateNotFoundError,
    LinkNotFoundError,
    SlugConflictError,
    UnauthorizedError,
    ValidationError,
)


logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
LINK_STATUSES = ("active", "inactive")


def validate_slug(slug: str) -> str:
    candidate = (slug or "").strip()
    if not SLUG_RE.match(candidate):
        raise ValidationError("Slug must be 1-64 characters of letters, digits, '-' or '_'")
    return candidate


def validate_destination_url(url: str) -> str:
    candidate = (url or "").strip()
    parts = urlsplit(candidate)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError("Destination URL must be an absolute http(s) URL")
    return candidate


def link_to_payload(link: Link) -> dict:
    return {
        "id": link.id,
        "affiliate_id": link.affiliate_id,
        "name": link.name,
        "slug": link.slug,
        "url": link.url,
        "status": link.status,
        "commission_rate": link.commission_rate,
        "clicks": int(link.clicks or 0),
        "conversions": int(link.conversions or 0),
        "revenue": link.revenue or Decimal("0"),
        "created_at": link.created_at,
    }


async def find_link(db: AsyncSession, link_id: int) -> Optional[Link]:
    result = await db.execute(select(Link).where(Link.id == link_id))
    return result.scalar_one_or_none()


async def create_link(
    db: AsyncSession,
    *,
    principal: Principal,
    name: str,
    url: str,
    slug: str,
    affiliate_id: Optional[int] = None,
    commission_rate: Optional[Decimal] = None,
) -> Link:
    if not (name or "").strip():
        raise ValidationError("Link name is required")
    slug = validate_slug(slug)
    url = validate_destination_url(url)
    validate_rate(commission_rate)

    # Admins may create links for any affiliate; affiliates only for themselves.
    owner_id = principal.id
    if principal.is_admin and affiliate_id is not None:
        owner_id = affiliate_id
    if await find_affiliate(db, owner_id) is None:
        raise AffiliateNotFoundError(owner_id)

    link = Link(
        affiliate_id=owner_id,
        name=name.strip(),
        slug=slug,
        url=url,
        status="active",
        commission_rate=commission_rate or None,
        clicks=0,
        conversions=0,
        revenue=Decimal("0"),
    )
    db.add(link)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise SlugConflictError(slug) from exc

    await db.commit()
    await db.refresh(link)
    logger.info("Link %s (%s) created for affiliate %s", link.id, link.slug, owner_id)
    return link


async def list_links(db: AsyncSession, principal: Principal) -> list[Link]:
    query = select(Link).order_by(Link.created_at.desc(), Link.id.desc())
    if not principal.is_admin:
        query = query.where(Link.affiliate_id == principal.id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def set_link_status(db: AsyncSession, link_id: int, status: str, principal: Principal) -> Link:
    if status not in LINK_STATUSES:
        raise ValidationError(f"Invalid link status: {status}")
    link = await find_link(db, link_id)
    if link is None:
        raise LinkNotFoundError(link_id)
    if not principal.is_admin and link.affiliate_id != principal.id:
        raise UnauthorizedError("Cannot modify another affiliate's link")

    previous = link.status
    link.status = status
    if principal.is_admin:
        record_audit(
            db,
            action="UPDATE_LINK_STATUS",
            target_type="Link",
            target_id=link.id,
            details={"before": previous, "after": status},
            admin_id=principal.id,
        )
    await db.commit()
    await db.refresh(link)
    return link
