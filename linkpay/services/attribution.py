"""Click recording for tracked links.

Every resolved click is stored as a ClickEvent, bots included. Only clicks not
classified as bots move the aggregate counters and establish attribution; a
rate-limit penalty alone lowers the score but does not suppress the click.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.config import settings
from linkpay.models.database import ClickEvent, Link
from linkpay.services.aggregates import increment_link_counters, upsert_daily_analytics
from linkpay.services.fraud import FraudVerdict


logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
DIRECT_REFERRER = "direct"
MOBILE_RE = re.compile(r"mobile", re.IGNORECASE)


@dataclass(frozen=True)
class RequestMetadata:
    ip: str
    user_agent: str
    referrer: str
    device_type: str

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], client_host: Optional[str] = None) -> "RequestMetadata":
        forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
        user_agent = headers.get("user-agent") or UNKNOWN
        return cls(
            ip=forwarded or client_host or UNKNOWN,
            user_agent=user_agent,
            referrer=headers.get("referer") or DIRECT_REFERRER,
            device_type="mobile" if MOBILE_RE.search(user_agent) else "desktop",
        )


class AttributionSink(Protocol):
    def establish(self, affiliate_id: int, link_id: int, ttl: timedelta) -> None:
        """Bind the visitor to the affiliate and link for ``ttl``."""
        ...


def attribution_ttl() -> timedelta:
    return timedelta(days=settings.attribution_ttl_days)


async def find_active_link_by_slug(db: AsyncSession, slug: str) -> Optional[Link]:
    result = await db.execute(select(Link).where(Link.slug == slug, Link.status == "active"))
    return result.scalar_one_or_none()


async def record_click(
    db: AsyncSession,
    link: Link,
    metadata: RequestMetadata,
    verdict: FraudVerdict,
    sink: AttributionSink,
) -> tuple[ClickEvent, bool]:
    """Persist the click and, for non-bots, count it and attribute the visitor.

    Returns the stored event and whether attribution was established.
    """
    event = ClickEvent(
        link_id=link.id,
        affiliate_id=link.affiliate_id,
        ip=metadata.ip,
        user_agent=metadata.user_agent,
        referrer=metadata.referrer,
        device_type=metadata.device_type,
        is_bot=verdict.is_bot,
        bot_type=verdict.bot_type,
        fraud_score=verdict.fraud_score,
    )
    db.add(event)

    if verdict.is_bot:
        await db.commit()
        logger.info("Bot click on link %s (%s) from %s", link.slug, verdict.bot_type, metadata.ip)
        return event, False

    await increment_link_counters(db, link.id, clicks=1)
    await upsert_daily_analytics(db, affiliate_id=link.affiliate_id, link_id=link.id, clicks=1)
    await db.commit()

    sink.establish(link.affiliate_id, link.id, attribution_ttl())
    if not verdict.within_limit:
        logger.warning("Rate limit exceeded for %s on link %s", metadata.ip, link.slug)
    return event, True
