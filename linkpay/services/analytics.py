from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.database import Affiliate, DailyAnalytics, Link, Payout
from linkpay.services.aggregates import utc_today
from linkpay.services.errors import ValidationError


RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90, "all": None}
DEFAULT_RANGE = "30d"
TOP_LINKS_LIMIT = 5
LEADERBOARD_LIMIT = 10
BREAKDOWN_LIMIT = 10
UNKNOWN_CAMPAIGN = "Unknown Campaign"
OPEN_PAYOUT_STATUSES = ("pending", "processing")


def range_start(range_key: str, today: Optional[date] = None) -> Optional[date]:
    if range_key not in RANGE_DAYS:
        raise ValidationError(f"Invalid range: {range_key}")
    days = RANGE_DAYS[range_key]
    if days is None:
        return None
    return (today or utc_today()) - timedelta(days=days)


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


def _rate(conversions: int, clicks: int) -> float:
    return round(conversions / clicks * 100, 2) if clicks else 0.0


async def get_analytics_summary(
    db: AsyncSession,
    affiliate_id: Optional[int],
    range_key: str = DEFAULT_RANGE,
    today: Optional[date] = None,
) -> dict:
    """Totals, per-day series and top links from the daily rollup.

    ``affiliate_id=None`` reports across every affiliate.
    """
    filters = _range_filters(range_start(range_key, today), affiliate_id)

    totals_result = await db.execute(
        select(
            func.coalesce(func.sum(DailyAnalytics.clicks), 0),
            func.coalesce(func.sum(DailyAnalytics.conversions), 0),
            func.coalesce(func.sum(DailyAnalytics.revenue), 0),
        ).where(*filters)
    )
    clicks, conversions, revenue = totals_result.one()

    chart_rows = await db.execute(
        select(
            DailyAnalytics.date,
            func.sum(DailyAnalytics.clicks).label("clicks"),
            func.sum(DailyAnalytics.conversions).label("conversions"),
            func.sum(DailyAnalytics.revenue).label("revenue"),
        )
        .where(*filters)
        .group_by(DailyAnalytics.date)
        .order_by(DailyAnalytics.date)
    )

    revenue_sum = func.coalesce(func.sum(DailyAnalytics.revenue), 0)
    top_rows = await db.execute(
        select(
            Link.id,
            Link.name,
            Link.slug,
            func.sum(DailyAnalytics.clicks).label("clicks"),
            func.sum(DailyAnalytics.conversions).label("conversions"),
            revenue_sum.label("revenue"),
        )
        .join(Link, Link.id == DailyAnalytics.link_id)
        .where(*filters)
        .group_by(Link.id, Link.name, Link.slug)
        .order_by(revenue_sum.desc(), Link.id)
        .limit(TOP_LINKS_LIMIT)
    )

    clicks = int(clicks or 0)
    conversions = int(conversions or 0)
    return {
        "range": range_key,
        "summary": {
            "clicks": clicks,
            "conversions": conversions,
            "revenue": _money(revenue),
            "conversion_rate": _rate(conversions, clicks),
        },
        "chart": [
            {
                "date": row.date.isoformat(),
                "clicks": int(row.clicks or 0),
                "conversions": int(row.conversions or 0),
                "revenue": _money(row.revenue),
            }
            for row in chart_rows.all()
        ],
        "top_links": [
            {
                "id": row.id,
                "name": row.name,
                "slug": row.slug,
                "clicks": int(row.clicks or 0),
                "conversions": int(row.conversions or 0),
                "revenue": _money(row.revenue),
            }
            for row in top_rows.all()
        ],
    }


def _range_filters(start: Optional[date], affiliate_id: Optional[int] = None) -> list:
    filters = []
    if start is not None:
        filters.append(DailyAnalytics.date >= start)
    if affiliate_id is not None:
        filters.append(DailyAnalytics.affiliate_id == affiliate_id)
    return filters


def _breakdown_entry(row, **extra) -> dict:
    clicks = int(row.clicks or 0)
    conversions = int(row.conversions or 0)
    return {
        **extra,
        "clicks": clicks,
        "conversions": conversions,
        "revenue": _money(row.revenue),
        "conversion_rate": _rate(conversions, clicks),
    }


async def get_leaderboard(
    db: AsyncSession,
    range_key: str = DEFAULT_RANGE,
    limit: int = LEADERBOARD_LIMIT,
    today: Optional[date] = None,
) -> dict:
    """Affiliates ranked by revenue over the range."""
    filters = _range_filters(range_start(range_key, today))
    revenue_sum = func.coalesce(func.sum(DailyAnalytics.revenue), 0)
    rows = await db.execute(
        select(
            Affiliate.id,
            Affiliate.name,
            Affiliate.email,
            func.sum(DailyAnalytics.clicks).label("clicks"),
            func.sum(DailyAnalytics.conversions).label("conversions"),
            revenue_sum.label("revenue"),
        )
        .join(Affiliate, Affiliate.id == DailyAnalytics.affiliate_id)
        .where(*filters)
        .group_by(Affiliate.id, Affiliate.name, Affiliate.email)
        .order_by(revenue_sum.desc(), Affiliate.id)
        .limit(limit)
    )
    return {
        "range": range_key,
        "leaderboard": [
            _breakdown_entry(row, rank=rank, affiliate_id=row.id, name=row.name, email=row.email)
            for rank, row in enumerate(rows.all(), start=1)
        ],
    }


async def get_funnel(
    db: AsyncSession,
    affiliate_id: Optional[int],
    range_key: str = DEFAULT_RANGE,
    today: Optional[date] = None,
) -> dict:
    """Click to conversion funnel with per-campaign breakdown.

    The per-affiliate breakdown is only produced for the all-affiliate view
    (``affiliate_id=None``).
    """
    today = today or utc_today()
    start = range_start(range_key, today)
    filters = _range_filters(start, affiliate_id)

    totals = await db.execute(
        select(
            func.coalesce(func.sum(DailyAnalytics.clicks), 0),
            func.coalesce(func.sum(DailyAnalytics.conversions), 0),
            func.coalesce(func.sum(DailyAnalytics.revenue), 0),
        ).where(*filters)
    )
    clicks, conversions, revenue = totals.one()
    clicks = int(clicks or 0)
    conversions = int(conversions or 0)

    affiliate_breakdown = []
    if affiliate_id is None:
        revenue_sum = func.coalesce(func.sum(DailyAnalytics.revenue), 0)
        rows = await db.execute(
            select(
                Affiliate.id,
                Affiliate.name,
                func.sum(DailyAnalytics.clicks).label("clicks"),
                func.sum(DailyAnalytics.conversions).label("conversions"),
                revenue_sum.label("revenue"),
            )
            .join(Affiliate, Affiliate.id == DailyAnalytics.affiliate_id)
            .where(*filters)
            .group_by(Affiliate.id, Affiliate.name)
            .order_by(revenue_sum.desc(), Affiliate.id)
            .limit(BREAKDOWN_LIMIT)
        )
        affiliate_breakdown = [
            _breakdown_entry(row, affiliate_id=row.id, name=row.name) for row in rows.all()
        ]

    revenue_sum = func.coalesce(func.sum(DailyAnalytics.revenue), 0)
    campaign_rows = await db.execute(
        select(
            DailyAnalytics.link_id,
            Link.name,
            Link.slug,
            func.sum(DailyAnalytics.clicks).label("clicks"),
            func.sum(DailyAnalytics.conversions).label("conversions"),
            revenue_sum.label("revenue"),
        )
        .outerjoin(Link, Link.id == DailyAnalytics.link_id)
        .where(*filters)
        .group_by(DailyAnalytics.link_id, Link.name, Link.slug)
        .order_by(revenue_sum.desc(), DailyAnalytics.link_id)
        .limit(BREAKDOWN_LIMIT)
    )

    return {
        "range": range_key,
        "funnel": {
            "clicks": clicks,
            "conversions": conversions,
            "revenue": _money(revenue),
            "conversion_rate": _rate(conversions, clicks),
        },
        "affiliate_breakdown": affiliate_breakdown,
        "campaign_breakdown": [
            _breakdown_entry(
                row,
                link_id=row.link_id,
                name=row.name or UNKNOWN_CAMPAIGN,
                slug=row.slug,
            )
            for row in campaign_rows.all()
        ],
        "date_range": {
            "start": start.isoformat() if start is not None else None,
            "end": today.isoformat(),
        },
    }


async def get_admin_stats(db: AsyncSession, now: Optional[datetime] = None) -> dict:
    """Programme-wide headline numbers for the admin dashboard."""
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    counts = await db.execute(
        select(
            func.count(Affiliate.id),
            func.sum(case((Affiliate.status == "active", 1), else_=0)),
            func.sum(case((Affiliate.status == "pending", 1), else_=0)),
        ).where(Affiliate.role == "affiliate")
    )
    total, active, pending = counts.one()

    total_revenue = await db.scalar(select(func.coalesce(func.sum(DailyAnalytics.revenue), 0)))
    pending_payouts = await db.scalar(
        select(func.coalesce(func.sum(Payout.amount), 0)).where(Payout.status.in_(OPEN_PAYOUT_STATUSES))
    )
    monthly_payouts = await db.scalar(
        select(func.coalesce(func.sum(Payout.amount), 0)).where(
            Payout.status == "completed", Payout.date >= month_start
        )
    )

    return {
        "total_affiliates": int(total or 0),
        "active_affiliates": int(active or 0),
        "pending_affiliates": int(pending or 0),
        "total_revenue": _money(total_revenue),
        "pending_payouts": _money(pending_payouts),
        "monthly_payouts": _money(monthly_payouts),
    }
