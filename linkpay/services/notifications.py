"""Affiliate notifications (commission earned, payout lifecycle).

Delivery is best-effort: callers go through ``notify_safely`` so a failing
transport is logged and never fails the ledger operation that triggered it.
Without a configured webhook URL messages are only logged.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Awaitable, Optional

import httpx

from linkpay.config import settings
from linkpay.models.database import Affiliate


logger = logging.getLogger(__name__)


def _money(amount: Decimal | float) -> str:
    return f"{Decimal(str(amount)).quantize(Decimal('0.01'))}"


class Notifier:
    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.webhook_url = settings.notification_webhook_url if webhook_url is None else webhook_url
        self.timeout_seconds = timeout_seconds or settings.notification_timeout_seconds
        self._client = client

    async def commission_earned(self, affiliate: Affiliate, amount: Decimal, source: str) -> None:
        await self._deliver(
            "commission_earned",
            affiliate,
            subject="You earned a new commission",
            data={"amount": _money(amount), "source": source or "Referral"},
        )

    async def payout_requested(self, affiliate: Affiliate, amount: Decimal) -> None:
        await self._deliver(
            "payout_requested",
            affiliate,
            subject="Payout request received",
            data={"amount": _money(amount)},
        )

    async def payout_status_changed(self, affiliate: Affiliate, amount: Decimal, status: str) -> None:
        await self._deliver(
            "payout_status_changed",
            affiliate,
            subject=f"Payout {status}",
            data={"amount": _money(amount), "status": status},
        )

    async def _deliver(self, event: str, affiliate: Affiliate, *, subject: str, data: dict[str, Any]) -> None:
        payload = {
            "event": event,
            "to": affiliate.email,
            "name": affiliate.name,
            "subject": subject,
            "data": data,
        }
        if not self.webhook_url:
            logger.info("Notification (simulated) %s -> %s: %s %s", event, affiliate.email, subject, data)
            return

        if self._client is not None:
            response = await self._client.post(self.webhook_url, json=payload, timeout=self.timeout_seconds)
            response.raise_for_status()
            return

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()
        logger.info("Notification %s sent to %s", event, affiliate.email)


async def notify_safely(call: Awaitable[None], event: str) -> bool:
    try:
        await call
        return True
    except Exception as exc:
        logger.error("Notification %s failed: %s", event, exc)
        return False


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = Notifier()
    return _notifier
