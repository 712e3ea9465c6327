"""
Role-Based Access Control (RBAC) for the ad-ops admin panel.

Model:
    modules -> permissions ("<module>_<action>") -> role_permissions -> roles -> users

Each user holds exactly one leveled role (1-10). Roles at level 8+
(admin) and 10 (super admin) are elevated: they pass every permission
check and see every row. Everyone else sees only rows they created.

Usage:
    from rbac import RequirePermission, Action, scope_query

    @router.get("/campaigns")
    async def list_campaigns(
        decision: AuthorizationDecision = Depends(RequirePermission("campaigns", Action.READ)),
        session: AsyncSession = Depends(get_db_session),
    ):
        stmt = scope_query(select(Campaign), decision.principal)
        ...
"""

from .context import Principal, RoleInfo
from .exceptions import (
    RBACError,
    NotAuthenticated,
    PermissionDenied,
    RoleInactive,
    ResolutionError,
    OwnershipViolation,
    InvalidRoleMutation,
    PrivilegeEscalation,
    RecordNotFound,
    ValidationFailed,
    DuplicateRecord,
)
from .permissions import (
    Action,
    PermissionName,
    METHOD_ACTIONS,
    as_permission_name,
    route_permission,
    group_by_module,
)
from .modules import MODULES, ModuleDefinition, get_module
from .catalog import (
    SYSTEM_PERMISSIONS,
    ROUTE_PERMISSIONS,
    PermissionCatalog,
    PermissionDefinition,
    get_permission_catalog,
)
from .ownership import (
    ADMIN_LEVEL,
    SUPER_ADMIN_LEVEL,
    is_elevated,
    is_super_admin,
    scope_query,
    can_access_record,
    authorize_record,
    stamp_ownership,
)
from .cache import (
    CacheConfig,
    CachedPermissions,
    PermissionCache,
    get_permission_cache,
    reset_permission_cache,
)
from .resolver import PermissionResolver
from .guard import (
    AuthorizationDecision,
    Outcome,
    ReasonCode,
    REASON_STATUS,
    RouteGuard,
)

__all__ = [
    # Context
    "Principal",
    "RoleInfo",
    # Errors
    "RBACError",
    "NotAuthenticated",
    "PermissionDenied",
    "RoleInactive",
    "ResolutionError",
    "OwnershipViolation",
    "InvalidRoleMutation",
    "PrivilegeEscalation",
    "RecordNotFound",
    "ValidationFailed",
    "DuplicateRecord",
    # Permission names
    "Action",
    "PermissionName",
    "METHOD_ACTIONS",
    "as_permission_name",
    "route_permission",
    "group_by_module",
    # Registry / catalog
    "MODULES",
    "ModuleDefinition",
    "get_module",
    "SYSTEM_PERMISSIONS",
    "ROUTE_PERMISSIONS",
    "PermissionCatalog",
    "PermissionDefinition",
    "get_permission_catalog",
    # Ownership
    "ADMIN_LEVEL",
    "SUPER_ADMIN_LEVEL",
    "is_elevated",
    "is_super_admin",
    "scope_query",
    "can_access_record",
    "authorize_record",
    "stamp_ownership",
    # Cache / resolution / guard
    "CacheConfig",
    "CachedPermissions",
    "PermissionCache",
    "get_permission_cache",
    "reset_permission_cache",
    "PermissionResolver",
    "AuthorizationDecision",
    "Outcome",
    "ReasonCode",
    "REASON_STATUS",
    "RouteGuard",
]
