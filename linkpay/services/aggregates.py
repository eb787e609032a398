"""Atomic counter updates for Link lifetime stats and the daily rollup.

Counters are shared by concurrent clicks, conversions and reversals, so every
change is a single SQL statement (``x = x + :delta``); nothing here reads a
counter before writing it.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.database import NO_LINK_KEY, DailyAnalytics, Link


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Atomic upsert not supported for dialect: {dialect}")


async def increment_link_counters(
    db: AsyncSession,
    link_id: int,
    *,
    clicks: int = 0,
    conversions: int = 0,
    revenue: Decimal = Decimal("0"),
) -> None:
    values = {}
    if clicks:
        values["clicks"] = Link.clicks + clicks
    if conversions:
        values["conversions"] = Link.conversions + conversions
    if revenue:
        values["revenue"] = Link.revenue + revenue
    if not values:
        return
    await db.execute(update(Link).where(Link.id == link_id).values(**values))


async def upsert_daily_analytics(
    db: AsyncSession,
    *,
    affiliate_id: int,
    link_id: Optional[int],
    day: Optional[date] = None,
    clicks: int = 0,
    conversions: int = 0,
    revenue: Decimal = Decimal("0"),
) -> None:
    """Add the deltas to the (day, link, affiliate) row, creating it if absent.

    A newly created row starts from the deltas themselves, so counters the
    caller does not touch are initialised to zero.
    """
    insert = _insert_for(db)
    stmt = insert(DailyAnalytics).values(
        date=day or utc_today(),
        link_key=link_id if link_id is not None else NO_LINK_KEY,
        link_id=link_id,
        affiliate_id=affiliate_id,
        clicks=clicks,
        conversions=conversions,
        revenue=revenue,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[DailyAnalytics.date, DailyAnalytics.link_key, DailyAnalytics.affiliate_id],
        set_={
            "clicks": DailyAnalytics.clicks + stmt.excluded.clicks,
            "conversions": DailyAnalytics.conversions + stmt.excluded.conversions,
            "revenue": DailyAnalytics.revenue + stmt.excluded.revenue,
        },
    )
    await db.execute(stmt)
