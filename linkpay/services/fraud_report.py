from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.database import Affiliate, ClickEvent, Link


RECENT_LIMIT = 50
OFFENDERS_LIMIT = 10

_SUSPICIOUS = or_(ClickEvent.is_bot.is_(True), ClickEvent.fraud_score > 0)


def _click_to_payload(event: ClickEvent, link: Link, affiliate: Affiliate) -> dict:
    return {
        "id": event.id,
        "ip": event.ip,
        "user_agent": event.user_agent,
        "referrer": event.referrer,
        "device_type": event.device_type,
        "is_bot": bool(event.is_bot),
        "bot_type": event.bot_type,
        "fraud_score": int(event.fraud_score or 0),
        "timestamp": event.timestamp,
        "link": {"id": link.id, "name": link.name, "slug": link.slug},
        "affiliate": {"id": affiliate.id, "name": affiliate.name, "email": affiliate.email},
    }


async def get_fraud_report(db: AsyncSession) -> dict:
    recent_rows = await db.execute(
        select(ClickEvent, Link, Affiliate)
        .join(Link, Link.id == ClickEvent.link_id)
        .join(Affiliate, Affiliate.id == ClickEvent.affiliate_id)
        .where(_SUSPICIOUS)
        .order_by(ClickEvent.timestamp.desc(), ClickEvent.id.desc())
        .limit(RECENT_LIMIT)
    )

    suspicious_count = func.count(ClickEvent.id)
    offender_rows = await db.execute(
        select(
            Affiliate.id,
            Affiliate.name,
            Affiliate.email,
            suspicious_count.label("suspicious_clicks"),
            func.avg(ClickEvent.fraud_score).label("avg_fraud_score"),
            func.max(ClickEvent.timestamp).label("last_activity"),
        )
        .join(Affiliate, Affiliate.id == ClickEvent.affiliate_id)
        .where(_SUSPICIOUS)
        .group_by(Affiliate.id, Affiliate.name, Affiliate.email)
        .order_by(suspicious_count.desc(), Affiliate.id)
        .limit(OFFENDERS_LIMIT)
    )

    return {
        "recent_clicks": [
            _click_to_payload(event, link, affiliate) for event, link, affiliate in recent_rows.all()
        ],
        "top_offenders": [
            {
                "affiliate": {"id": row.id, "name": row.name, "email": row.email},
                "suspicious_clicks": int(row.suspicious_clicks),
                "avg_fraud_score": round(float(row.avg_fraud_score or 0)),
                "last_activity": row.last_activity,
            }
            for row in offender_rows.all()
        ],
    }
