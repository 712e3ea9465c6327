"""
Permission names - structured module/action values.

A permission is stored and transmitted as "<module>_<action>"
(e.g. "facebook_pages_update"). Inside the service it is a
PermissionName(module, action) so the action never has to be
re-derived by string splitting.
"""

from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Dict, Iterable, List, Union


# =============================================================================
# ACTIONS
# =============================================================================

class Action(str, PyEnum):
    """Actions a permission can grant within a module."""
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"
    VIEW = "view"
    EXPORT = "export"


CRUD_ACTIONS = (Action.READ, Action.CREATE, Action.UPDATE, Action.DELETE)


# HTTP method (or pseudo-method) to action used by route-level guards
METHOD_ACTIONS: Dict[str, Action] = {
    "GET": Action.READ,
    "HEAD": Action.READ,
    "POST": Action.CREATE,
    "PUT": Action.UPDATE,
    "PATCH": Action.UPDATE,
    "DELETE": Action.DELETE,
    "EXPORT": Action.EXPORT,
}


# =============================================================================
# PERMISSION NAME
# =============================================================================

@dataclass(frozen=True, order=True)
class PermissionName:
    """A single module/action grant."""
    module: str
    action: Action

    def __post_init__(self):
        if not self.module:
            raise ValueError("Permission module cannot be empty")
        if not isinstance(self.action, Action):
            object.__setattr__(self, "action", Action(self.action))

    def __str__(self) -> str:
        return f"{self.module}_{self.action.value}"

    @classmethod
    def parse(cls, value: str) -> "PermissionName":
        """
        Parse the "<module>_<action>" wire form.

        The action is the final underscore-separated segment and must be
        a known action; everything before it is the module slug.

        Raises:
            ValueError: If the value has no known action suffix.
        """
        module, sep, action = value.strip().rpartition("_")
        if not sep or not module:
            raise ValueError(f"Invalid permission name: {value!r}")
        try:
            return cls(module=module, action=Action(action))
        except ValueError:
            raise ValueError(f"Unknown action in permission name: {value!r}") from None


PermissionLike = Union[PermissionName, str]


def as_permission_name(value: PermissionLike) -> PermissionName:
    """Coerce a wire string or PermissionName to PermissionName."""
    if isinstance(value, PermissionName):
        return value
    return PermissionName.parse(value)


def route_permission(module: str, method: str) -> PermissionName:
    """
    Permission required for an HTTP method on a module's routes.

    Raises:
        ValueError: If the method has no mapped action.
    """
    action = METHOD_ACTIONS.get(method.upper())
    if action is None:
        raise ValueError(f"No permission mapping for method {method!r}")
    return PermissionName(module=module, action=action)


# =============================================================================
# PRESENTATION HELPERS
# =============================================================================

def group_by_module(
    permissions: Iterable[PermissionLike],
) -> Dict[str, List[PermissionName]]:
    """
    Group permissions by module for display.

    Modules and the permissions within each module are sorted so the
    output is stable regardless of input order.
    """
    grouped: Dict[str, List[PermissionName]] = {}
    for permission in {as_permission_name(p) for p in permissions}:
        grouped.setdefault(permission.module, []).append(permission)

    return {
        module: sorted(grouped[module], key=lambda p: p.action.value)
        for module in sorted(grouped)
    }
