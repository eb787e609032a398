"""Domain errors raised by the ledger services.

Each error carries the HTTP status the API layer renders it with. Duplicate
sale events and already-reversed commissions are results, not errors.
"""
from __future__ import annotations


class LedgerError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(LedgerError):
    status_code = 404


class AffiliateNotFoundError(NotFoundError):
    def __init__(self, affiliate_id: int) -> None:
        super().__init__(f"Affiliate not found: {affiliate_id}")
        self.affiliate_id = affiliate_id


class LinkNotFoundError(NotFoundError):
    def __init__(self, reference: object) -> None:
        super().__init__(f"Link not found: {reference}")


class CommissionNotFoundError(NotFoundError):
    def __init__(self, commission_id: int) -> None:
        super().__init__(f"Commission not found: {commission_id}")


class PayoutNotFoundError(NotFoundError):
    def __init__(self, payout_id: int) -> None:
        super().__init__(f"Payout not found: {payout_id}")


class ValidationError(LedgerError):
    status_code = 400


class SlugConflictError(LedgerError):
    status_code = 409

    def __init__(self, slug: str) -> None:
        super().__init__(f"Slug already in use: {slug}")
        self.slug = slug


class InsufficientBalanceError(LedgerError):
    status_code = 400

    def __init__(self, requested, available) -> None:
        super().__init__("Insufficient balance")
        self.requested = requested
        self.available = available


class UnauthorizedError(LedgerError):
    status_code = 403


class InvalidTransitionError(LedgerError):
    status_code = 409

    def __init__(self, entity: str, current: str, target: str) -> None:
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")
        self.current = current
        self.target = target
