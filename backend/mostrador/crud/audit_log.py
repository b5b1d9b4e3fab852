from __future__ import annotations

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.models.audit_log import AuditLog


def record_audit(
    db: AsyncSession,
    *,
    actor_user_id: Optional[uuid.UUID],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    organization_id: Optional[uuid.UUID] = None,
    details: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """Adds an audit row to the session; the caller's commit persists it."""
    entry = AuditLog(
        actor_user_id=actor_user_id,
        organization_id=organization_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details or {},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    return entry


async def list_audit_logs(
    db: AsyncSession,
    *,
    limit: int = 100,
    actor_user_id: Optional[uuid.UUID] = None,
    organization_id: Optional[uuid.UUID] = None,
) -> Sequence[AuditLog]:
    stmt = select(AuditLog)
    if actor_user_id is not None:
        stmt = stmt.where(AuditLog.actor_user_id == actor_user_id)
    if organization_id is not None:
        stmt = stmt.where(AuditLog.organization_id == organization_id)
    stmt = stmt.order_by(AuditLog.created_at.desc()).limit(limit)
    return (await db.execute(stmt)).scalars().all()
