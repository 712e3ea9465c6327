"""
FastAPI Routers - Modular endpoint organization.

Router modules:
- health: Liveness/readiness and database status
- roles: Role CRUD and role permission sets
- permissions: Catalog, effective permissions, grant/revoke, audit trail
- users: User role assignment
- resources: Ownership-scoped CRUD for campaigns, brands, assets and cards
"""

from .health import router as health_router
from .roles import router as roles_router
from .permissions import router as permissions_router
from .users import router as users_router
from .resources import RESOURCE_ROUTERS as resource_routers

__all__ = [
    "health_router",
    "roles_router",
    "permissions_router",
    "users_router",
    "resource_routers",
]
