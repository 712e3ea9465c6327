"""
Role management API.

Endpoints:
- GET    /roles                    list with permission/user counts
- GET    /roles/{id}               single role
- POST   /roles                    create custom role
- PUT    /roles/{id}               update role
- DELETE /roles/{id}               delete role
- GET    /roles/{id}/permissions   permissions grouped by module
- PUT    /roles/{id}/permissions   replace permission set
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rbac.cache import PermissionCache
from rbac.dependencies import RequirePermission, get_db_session, get_permission_cache
from rbac.guard import AuthorizationDecision
from rbac.permissions import Action
from rbac.roles import RoleService

from web.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/roles",
    tags=["Roles"],
    responses={403: {"description": "Insufficient permissions"}},
)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class RoleCreate(BaseModel):
    """Request to create a role."""
    name: str = Field(..., description="Unique role name (3-50 chars)")
    display_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    level: int = Field(1, description="Role level 1-10")
    is_active: bool = True


class RoleUpdate(BaseModel):
    """Request to update a role. Omitted fields are left unchanged."""
    name: Optional[str] = None
    display_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    level: Optional[int] = None
    is_active: Optional[bool] = None


class RolePermissionsUpdate(BaseModel):
    """Request to replace a role's permission set."""
    permissions: List[str] = Field(default_factory=list, description="Permission names")
    reason: Optional[str] = Field(None, max_length=500)


def _service(session: AsyncSession, cache: Optional[PermissionCache]) -> RoleService:
    return RoleService(session, cache)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("")
async def list_roles(
    search: Optional[str] = Query(None, max_length=100),
    is_active: Optional[bool] = Query(None),
    decision: AuthorizationDecision = Depends(RequirePermission("roles", Action.READ)),
    session: AsyncSession = Depends(get_db_session),
):
    roles = await RoleService(session).list_roles(search=search, is_active=is_active)
    return success_response({"roles": roles, "total": len(roles)}, "Roles retrieved")


@router.get("/{role_id}")
async def get_role(
    role_id: int,
    decision: AuthorizationDecision = Depends(RequirePermission("roles", Action.READ)),
    session: AsyncSession = Depends(get_db_session),
):
    role = await RoleService(session).get_role_detail(role_id)
    return success_response(role, "Role retrieved")


@router.post("", status_code=201)
async def create_role(
    body: RoleCreate,
    decision: AuthorizationDecision = Depends(RequirePermission("roles", Action.CREATE)),
    session: AsyncSession = Depends(get_db_session),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    role = await _service(session, cache).create_role(
        decision.principal,
        name=body.name,
        display_name=body.display_name,
        description=body.description,
        level=body.level,
        is_active=body.is_active,
    )
    return success_response(role.to_dict(), "Role created successfully", status_code=201)


@router.put("/{role_id}")
async def update_role(
    role_id: int,
    body: RoleUpdate,
    decision: AuthorizationDecision = Depends(RequirePermission("roles", Action.UPDATE)),
    session: AsyncSession = Depends(get_db_session),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    role = await _service(session, cache).update_role(
        decision.principal, role_id, body.model_dump(exclude_unset=True)
    )
    return success_response(role.to_dict(), "Role updated successfully")


@router.delete("/{role_id}")
async def delete_role(
    role_id: int,
    decision: AuthorizationDecision = Depends(RequirePermission("roles", Action.DELETE)),
    session: AsyncSession = Depends(get_db_session),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    await _service(session, cache).delete_role(decision.principal, role_id)
    return success_response(None, "Role deleted successfully")


@router.get("/{role_id}/permissions")
async def get_role_permissions(
    role_id: int,
    decision: AuthorizationDecision = Depends(RequirePermission("roles", Action.READ)),
    session: AsyncSession = Depends(get_db_session),
):
    modules = await RoleService(session).get_role_permissions(role_id)
    return success_response({"role_id": role_id, "modules": modules}, "Role permissions retrieved")


@router.put("/{role_id}/permissions")
async def set_role_permissions(
    role_id: int,
    body: RolePermissionsUpdate,
    decision: AuthorizationDecision = Depends(RequirePermission("permissions", Action.MANAGE)),
    session: AsyncSession = Depends(get_db_session),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    change = await _service(session, cache).set_role_permissions(
        decision.principal, role_id, body.permissions, reason=body.reason
    )
    return success_response(
        {
            "role_id": change.role_id,
            "permissions": change.permissions,
            "added": change.added,
            "removed": change.removed,
        },
        "Role permissions updated successfully",
    )
