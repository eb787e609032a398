from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException

from linkpay.services.auth import AFFILIATE_ROLE, Principal


def get_optional_principal(
    principal_id: Optional[str] = Header(None, alias="X-Principal-Id"),
    principal_role: Optional[str] = Header(None, alias="X-Principal-Role"),
) -> Optional[Principal]:
    """Principal forwarded by the session layer in front of this API."""
    if not principal_id:
        return None
    try:
        return Principal(id=int(principal_id), role=(principal_role or AFFILIATE_ROLE).strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid principal") from exc


def get_principal(principal: Optional[Principal] = Depends(get_optional_principal)) -> Principal:
    if principal is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return principal
