"""Background jobs for the ledger."""
from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from linkpay.config import settings
from linkpay.services.commissions import approve_matured_commissions
from linkpay.services.database import async_session
from linkpay.services.fraud import get_rate_limiter

logger = logging.getLogger(__name__)


class LedgerScheduler:
    def __init__(self) -> None:
        self.scheduler = AsyncIOScheduler()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def auto_approve_enabled(self) -> bool:
        return settings.commission_auto_approve_days > 0

    def job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    async def start(self) -> None:
        if self._running:
            return
        logger.info("Starting ledger scheduler...")

        self.scheduler.add_job(
            self._prune_rate_limiter,
            IntervalTrigger(seconds=max(60, int(settings.rate_limit_window_seconds) * 5)),
            id="rate_limiter_prune",
            name="Rate Limiter Window Cleanup",
            replace_existing=True,
        )
        if self.auto_approve_enabled:
            self.scheduler.add_job(
                self._approval_loop,
                IntervalTrigger(minutes=max(1, settings.commission_approval_interval_minutes)),
                id="commission_approval",
                name="Matured Commission Approval",
                replace_existing=True,
            )

        self.scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    async def stop(self) -> None:
        if not self._running:
            return
        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=True)
        self._running = False

    async def _approval_loop(self) -> None:
        try:
            async with async_session() as db:
                approved = await approve_matured_commissions(db, settings.commission_auto_approve_days)
            logger.info("Commission approval pass complete: %s approved", approved)
        except Exception as exc:
            logger.exception("Commission approval pass failed: %s", exc)

    async def _prune_rate_limiter(self) -> None:
        removed = get_rate_limiter().prune()
        if removed:
            logger.debug("Pruned %s expired rate limit windows", removed)


_scheduler: Optional[LedgerScheduler] = None


def get_scheduler() -> LedgerScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = LedgerScheduler()
    return _scheduler
