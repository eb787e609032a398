"""Stripe webhook adapter: verified events in, ledger operations out.

Handled events:
- checkout.session.completed -> commission (idempotent on the session id)
- charge.refunded            -> proportional reversal
- charge.dispute.created     -> reversal with reason "dispute"

Anything else is acknowledged and ignored. Events that reference unknown
affiliates or commissions are acknowledged too so Stripe stops retrying them;
storage failures propagate and Stripe redelivers.
"""
from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Optional

import stripe

from linkpay.config import settings
from linkpay.services.commissions import process_commission
from linkpay.services.errors import LedgerError, ValidationError
from linkpay.services.reversals import reverse_commission


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def from_minor_units(value: Any) -> Decimal:
    return Decimal(int(value or 0)) / HUNDRED


def construct_stripe_event(payload: bytes, signature: Optional[str], secret: Optional[str] = None) -> dict:
    """Verify the Stripe signature and return the event as a plain dict."""
    webhook_secret = secret if secret is not None else settings.stripe_webhook_secret
    if not webhook_secret or not signature:
        raise ValidationError("Missing Stripe webhook secret or signature")
    try:
        stripe.Webhook.construct_event(payload, signature, webhook_secret)
    except stripe.SignatureVerificationError as exc:
        logger.error("Invalid Stripe webhook signature: %s", exc)
        raise ValidationError("Invalid signature") from exc
    except ValueError as exc:
        logger.error("Invalid Stripe webhook payload: %s", exc)
        raise ValidationError("Invalid payload") from exc
    return json.loads(payload)


def _optional_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def handle_checkout_completed(db, session: dict) -> dict:
    metadata = session.get("metadata") or {}
    affiliate_id = _optional_int(metadata.get("affiliate_id"))
    if affiliate_id is None:
        return {"status": "ignored", "reason": "no affiliate metadata"}

    session_id = session.get("id")
    result = await process_commission(
        db,
        affiliate_id=affiliate_id,
        link_id=_optional_int(metadata.get("link_id")),
        sale_amount=from_minor_units(session.get("amount_total")),
        unique_id=session_id,
        charge_id=session.get("payment_intent"),
        currency=(session.get("currency") or "usd").upper(),
        description=f"Commission for sale via Stripe (Session: {session_id})",
        source="Stripe",
    )
    return {"status": result.status, "commission_id": result.commission.id}


async def handle_charge_refunded(db, charge: dict) -> dict:
    result = await reverse_commission(
        db,
        charge_id=charge.get("id"),
        refund_amount=from_minor_units(charge.get("amount_refunded")),
        original_amount=from_minor_units(charge.get("amount")) or None,
        charge_reference=charge.get("payment_intent"),
        reason="refund",
    )
    return {"status": result.status, "reverse_amount": str(result.reverse_amount)}


async def handle_dispute_created(db, dispute: dict) -> dict:
    result = await reverse_commission(
        db,
        charge_id=dispute.get("charge"),
        refund_amount=from_minor_units(dispute.get("amount")),
        charge_reference=dispute.get("payment_intent"),
        reason="dispute",
    )
    return {"status": result.status, "reverse_amount": str(result.reverse_amount)}


EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "charge.refunded": handle_charge_refunded,
    "charge.dispute.created": handle_dispute_created,
}


async def handle_stripe_event(db, event: dict) -> dict:
    event_type = event.get("type")
    handler = EVENT_HANDLERS.get(event_type)
    logger.info("Received Stripe webhook: %s (%s)", event_type, event.get("id"))
    if handler is None:
        return {"status": "ignored", "reason": f"unhandled event type {event_type}"}

    obj = (event.get("data") or {}).get("object") or {}
    try:
        return await handler(db, obj)
    except LedgerError as exc:
        logger.warning("Stripe event %s not applied: %s", event.get("id"), exc.message)
        return {"status": "ignored", "reason": exc.message}
