from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkpay.models.database import Affiliate, AuditLog


def record_audit(
    db: AsyncSession,
    *,
    action: str,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    details: Optional[dict] = None,
    admin_id: Optional[int] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """Stage an audit entry in the caller's transaction (no commit)."""
    entry = AuditLog(
        admin_id=admin_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
        ip_address=ip_address,
    )
    db.add(entry)
    return entry


def _audit_to_payload(row: AuditLog, admin: Optional[Affiliate]) -> dict:
    return {
        "id": row.id,
        "action": row.action,
        "target_type": row.target_type,
        "target_id": row.target_id,
        "details": row.details or {},
        "ip_address": row.ip_address,
        "created_at": row.created_at,
        "admin": {"id": admin.id, "name": admin.name, "email": admin.email} if admin else None,
    }


async def list_audit_logs(
    db: AsyncSession,
    *,
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    limit: int = 50,
) -> list[dict]:
    query = (
        select(AuditLog, Affiliate)
        .outerjoin(Affiliate, Affiliate.id == AuditLog.admin_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
    )
    if action:
        query = query.where(func.lower(AuditLog.action).contains(action.lower()))
    if target_type:
        query = query.where(AuditLog.target_type == target_type)

    result = await db.execute(query)
    return [_audit_to_payload(row, admin) for row, admin in result.all()]
