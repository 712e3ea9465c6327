"""
Permission catalog and resolution API.

Endpoints:
- GET   /permissions/modules              modules with their permissions
- GET   /permissions/me                   caller's effective permissions
- GET   /permissions/users/{id}           a user's effective permissions
- POST  /permissions/check                  does a user hold one permission
- POST  /permissions/roles/{id}/grant     grant one permission to a role
- POST  /permissions/roles/{id}/revoke    revoke one permission from a role
- GET   /permissions/audit                paged audit trail
- PATCH /permissions/{id}                 activate/deactivate a permission
- PATCH /permissions/modules/{id}         activate/deactivate a module
"""

import logging
from typing import Any, Dict, FrozenSet, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config.settings import get_rbac_settings
from database.models import AuditAction, User
from rbac.audit import list_audit_log
from rbac.cache import PermissionCache
from rbac.context import Principal
from rbac.dependencies import (
    RequirePermission,
    get_db_session,
    get_permission_cache,
    get_permission_resolver,
    require_principal,
)
from rbac.exceptions import RecordNotFound, ValidationFailed
from rbac.guard import AuthorizationDecision
from rbac.ownership import is_elevated
from rbac.permissions import Action, PermissionName, as_permission_name, group_by_module
from rbac.resolver import PermissionResolver
from rbac.roles import RoleService
from rbac.services import PermissionAdminService

from web.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/permissions",
    tags=["Permissions"],
    responses={403: {"description": "Insufficient permissions"}},
)


class PermissionChange(BaseModel):
    """Grant or revoke a single permission."""
    permission: str = Field(..., description="Permission name, e.g. campaigns_read")
    reason: Optional[str] = Field(None, max_length=500)


class PermissionCheck(BaseModel):
    user_id: int
    permission_key: str = Field(..., description="Permission name, e.g. campaigns_update")


class ActivationChange(BaseModel):
    is_active: bool


def _permission_payload(
    principal: Principal,
    permissions: FrozenSet[PermissionName],
) -> Dict[str, Any]:
    return {
        "user": principal.to_dict(),
        "is_elevated": is_elevated(principal),
        "permissions": sorted(str(p) for p in permissions),
        "grouped": {
            module: [p.action.value for p in names]
            for module, names in group_by_module(permissions).items()
        },
    }


# =============================================================================
# CATALOG
# =============================================================================

@router.get("/modules")
async def list_modules(
    include_inactive: bool = Query(False),
    decision: AuthorizationDecision = Depends(RequirePermission("permissions", Action.READ)),
    session: AsyncSession = Depends(get_db_session),
):
    modules = await PermissionAdminService(session).list_modules_with_permissions(
        include_inactive=include_inactive
    )
    return success_response({"modules": modules}, "Modules retrieved")


@router.patch("/modules/{module_id}")
async def set_module_active(
    module_id: int,
    body: ActivationChange,
    decision: AuthorizationDecision = Depends(RequirePermission("permissions", Action.MANAGE)),
    session: AsyncSession = Depends(get_db_session),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    module = await PermissionAdminService(session, cache).set_module_active(
        decision.principal, module_id, body.is_active
    )
    return success_response(module.to_dict(), "Module updated successfully")


@router.patch("/{permission_id}")
async def set_permission_active(
    permission_id: int,
    body: ActivationChange,
    decision: AuthorizationDecision = Depends(RequirePermission("permissions", Action.MANAGE)),
    session: AsyncSession = Depends(get_db_session),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    permission = await PermissionAdminService(session, cache).set_permission_active(
        decision.principal, permission_id, body.is_active
    )
    return success_response(permission.to_dict(), "Permission updated successfully")


# =============================================================================
# EFFECTIVE PERMISSIONS
# =============================================================================

@router.get("/me")
async def my_permissions(
    principal: Principal = Depends(require_principal),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    permissions = await resolver.resolve_effective_permissions(principal)
    return success_response(_permission_payload(principal, permissions), "Permissions retrieved")


@router.get("/users/{user_id}")
async def user_permissions(
    user_id: int,
    decision: AuthorizationDecision = Depends(RequirePermission("permissions", Action.READ)),
    session: AsyncSession = Depends(get_db_session),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    user = await session.get(User, user_id, options=[selectinload(User.role)])
    if user is None:
        raise RecordNotFound("User not found")

    principal = Principal.from_user(user)
    permissions = await resolver.resolve_effective_permissions(principal)
    return success_response(_permission_payload(principal, permissions), "Permissions retrieved")


@router.post("/check")
async def check_permission(
    body: PermissionCheck,
    decision: AuthorizationDecision = Depends(RequirePermission("permissions", Action.READ)),
    session: AsyncSession = Depends(get_db_session),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    """Single permission check for any user; elevated roles hold everything."""
    try:
        permission = as_permission_name(body.permission_key)
    except ValueError as e:
        raise ValidationFailed(errors=[str(e)]) from None

    user = await session.get(User, body.user_id, options=[selectinload(User.role)])
    if user is None:
        raise RecordNotFound("User not found")

    allowed = user.is_active and await resolver.has_permission(Principal.from_user(user), permission)
    return success_response(
        {
            "user_id": user.id,
            "permission_key": str(permission),
            "has_permission": allowed,
        },
        "Permission checked",
    )


# =============================================================================
# GRANT / REVOKE
# =============================================================================

@router.post("/roles/{role_id}/grant")
async def grant_permission(
    role_id: int,
    body: PermissionChange,
    decision: AuthorizationDecision = Depends(RequirePermission("permissions", Action.MANAGE)),
    session: AsyncSession = Depends(get_db_session),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    await RoleService(session, cache).grant_permission(
        decision.principal, role_id, body.permission, reason=body.reason
    )
    return success_response(
        {"role_id": role_id, "permission": body.permission},
        "Permission granted successfully",
    )


@router.post("/roles/{role_id}/revoke")
async def revoke_permission(
    role_id: int,
    body: PermissionChange,
    decision: AuthorizationDecision = Depends(RequirePermission("permissions", Action.MANAGE)),
    session: AsyncSession = Depends(get_db_session),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
):
    await RoleService(session, cache).revoke_permission(
        decision.principal, role_id, body.permission, reason=body.reason
    )
    return success_response(
        {"role_id": role_id, "permission": body.permission},
        "Permission revoked successfully",
    )


# =============================================================================
# AUDIT
# =============================================================================

@router.get("/audit")
async def audit_log(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    role_id: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    decision: AuthorizationDecision = Depends(RequirePermission("permissions", Action.READ)),
    session: AsyncSession = Depends(get_db_session),
):
    settings = get_rbac_settings()

    audit_action = None
    if action:
        try:
            audit_action = AuditAction(action.upper())
        except ValueError:
            raise ValidationFailed(
                errors=[f"Unknown audit action: {action}"],
            ) from None

    result = await list_audit_log(
        session,
        page=page,
        limit=limit or settings.audit_page_size_default,
        max_limit=settings.audit_page_size_max,
        role_id=role_id,
        user_id=user_id,
        action=audit_action,
    )
    return success_response(result, "Audit log retrieved")
