from __future__ import annotations

from dataclasses import dataclass

from linkpay.services.errors import UnauthorizedError


ADMIN_ROLE = "admin"
AFFILIATE_ROLE = "affiliate"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as handed over by the session layer."""

    id: int
    role: str = AFFILIATE_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def require_admin(principal: Principal | None, action: str = "this action") -> Principal:
    if principal is None or not principal.is_admin:
        raise UnauthorizedError(f"Admin role required for {action}")
    return principal
