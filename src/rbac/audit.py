"""
Permission audit trail - records and pages through grant/revoke/assign events.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import AuditAction, PermissionAuditLog

from .context import Principal

logger = logging.getLogger(__name__)


def record_audit(
    session: AsyncSession,
    actor: Optional[Principal],
    action: AuditAction,
    *,
    target_role_id: Optional[int] = None,
    target_user_id: Optional[int] = None,
    permission_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> PermissionAuditLog:
    """Add an audit row to the caller's transaction (not committed here)."""
    entry = PermissionAuditLog(
        user_id=actor.id if actor else None,
        target_role_id=target_role_id,
        target_user_id=target_user_id,
        permission_id=permission_id,
        action=action.value,
        reason=reason,
    )
    session.add(entry)
    return entry


async def list_audit_log(
    session: AsyncSession,
    page: int = 1,
    limit: int = 50,
    *,
    max_limit: int = 100,
    role_id: Optional[int] = None,
    user_id: Optional[int] = None,
    action: Optional[AuditAction] = None,
) -> Dict[str, Any]:
    """
    Newest-first audit entries with pagination metadata.

    limit is clamped to [1, max_limit] and page to >= 1.
    """
    page = max(page, 1)
    limit = min(max(limit, 1), max_limit)

    conditions = []
    if role_id is not None:
        conditions.append(PermissionAuditLog.target_role_id == role_id)
    if user_id is not None:
        conditions.append(PermissionAuditLog.user_id == user_id)
    if action is not None:
        conditions.append(PermissionAuditLog.action == action.value)

    total = (
        await session.execute(
            select(func.count(PermissionAuditLog.id)).where(*conditions)
        )
    ).scalar_one()

    rows = (
        await session.execute(
            select(PermissionAuditLog)
            .where(*conditions)
            .order_by(PermissionAuditLog.created_at.desc(), PermissionAuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
    ).scalars().all()

    return {
        "entries": [row.to_dict() for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }
