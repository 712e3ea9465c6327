"""
Permission Catalog - system permissions derived from the module registry.

Provides:
- System permission definitions (seeded from code)
- Route permission table (module x method -> permission)
- In-memory catalog for lookups without database queries
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from .modules import MODULES, ModuleDefinition
from .permissions import (
    METHOD_ACTIONS,
    Action,
    PermissionLike,
    PermissionName,
    as_permission_name,
    route_permission,
)


@dataclass(frozen=True)
class PermissionDefinition:
    """Definition of a system permission."""
    name: PermissionName
    display_name: str
    description: str
    category: str


_ACTION_VERBS = {
    Action.READ: "View",
    Action.CREATE: "Create",
    Action.UPDATE: "Edit",
    Action.DELETE: "Delete",
    Action.MANAGE: "Manage",
    Action.VIEW: "Access",
    Action.EXPORT: "Export",
}


def _definitions_for(module: ModuleDefinition) -> List[PermissionDefinition]:
    return [
        PermissionDefinition(
            name=PermissionName(module.name, action),
            display_name=f"{_ACTION_VERBS[action]} {module.display_name}",
            description=f"{_ACTION_VERBS[action]} {module.description.lower()}",
            category=module.category,
        )
        for action in module.actions
    ]


SYSTEM_PERMISSIONS: List[PermissionDefinition] = [
    definition
    for module in MODULES
    for definition in _definitions_for(module)
]


# Route guard table, e.g. ROUTE_PERMISSIONS["campaigns"]["PUT"] == campaigns_update.
# Methods whose action the module does not declare are omitted.
ROUTE_PERMISSIONS: Dict[str, Dict[str, PermissionName]] = {
    module.name: {
        method: route_permission(module.name, method)
        for method, action in METHOD_ACTIONS.items()
        if action in module.actions
    }
    for module in MODULES
}


class PermissionCatalog:
    """
    In-memory catalog of permission definitions.

    Used for quick lookups without database queries.
    """

    def __init__(self):
        self._permissions: Dict[PermissionName, PermissionDefinition] = {
            p.name: p for p in SYSTEM_PERMISSIONS
        }

    def get(self, name: PermissionLike) -> Optional[PermissionDefinition]:
        return self._permissions.get(as_permission_name(name))

    def get_all(self) -> List[PermissionDefinition]:
        return list(self._permissions.values())

    def for_module(self, module: str) -> List[PermissionDefinition]:
        return [p for p in self._permissions.values() if p.name.module == module]

    def exists(self, name: PermissionLike) -> bool:
        try:
            return as_permission_name(name) in self._permissions
        except ValueError:
            return False

    def route_permission(self, module: str, method: str) -> PermissionName:
        """
        Permission a route guard enforces for an HTTP method on a module.

        Methods missing from ROUTE_PERMISSIONS (unmapped, or an action the
        module does not declare) require the module's manage permission.
        """
        permission = ROUTE_PERMISSIONS.get(module, {}).get(method.upper())
        if permission is None:
            return PermissionName(module, Action.MANAGE)
        return permission


# Singleton instance
_permission_catalog: Optional[PermissionCatalog] = None


def get_permission_catalog() -> PermissionCatalog:
    """Get singleton permission catalog."""
    global _permission_catalog
    if _permission_catalog is None:
        _permission_catalog = PermissionCatalog()
    return _permission_catalog
