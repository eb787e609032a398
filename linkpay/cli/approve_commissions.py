#!/usr/bin/env python3
"""Approve pending commissions older than the holding window."""
from __future__ import annotations

import argparse
import asyncio
import sys

from linkpay.config import settings
from linkpay.services.commissions import approve_matured_commissions
from linkpay.services.database import async_session


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Approve matured pending commissions")
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Holding window in days (defaults to COMMISSION_AUTO_APPROVE_DAYS)",
    )
    return parser.parse_args()


async def run() -> int:
    args = parse_args()
    days = args.days if args.days is not None else settings.commission_auto_approve_days
    if days <= 0:
        print("❌ Holding window must be at least one day (pass --days or set COMMISSION_AUTO_APPROVE_DAYS)")
        return 1

    async with async_session() as db:
        approved = await approve_matured_commissions(db, days)

    print(f"✅ Approved {approved} commissions older than {days} days")
    return 0


def main() -> int:
    return asyncio.run(run())


if __name__ == "__main__":
    sys.exit(main())
