"""User role assignment API."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rbac.cache import PermissionCache
from rbac.dependencies import RequirePermission, get_db_session, get_permission_cache
from rbac.guard import AuthorizationDecision
from rbac.permissions import Action
from rbac.roles import RoleService

from web.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


class RoleAssignment(BaseModel):
    role_id: int
    reason: Optional[str] = Field(None, max_length=500)


@router.put("/{user_id}/role")
async def assign_role(
    user_id: int,
    body: RoleAssignment,
    decision: AuthorizationDecision = Depends(RequirePermission("users", Action.UPDATE)),
    session: AsyncSession = Depends(get_db_session),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    user = await RoleService(session, cache).assign_user_role(
        decision.principal, user_id, body.role_id, reason=body.reason
    )
    return success_response(user.to_dict(), "User role updated successfully")
