"""
Route Guard - authorization decision for a single request.

Each request moves UNCHECKED -> GRANTED | DENIED | ERROR exactly once.
DENIED and ERROR both stop the request; decisions are never retried.
"""

import logging
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Dict, FrozenSet, Optional

from .context import Principal
from .exceptions import (
    NotAuthenticated,
    PermissionDenied,
    ResolutionError,
    RoleInactive,
)
from .ownership import is_elevated
from .permissions import PermissionLike, PermissionName, as_permission_name
from .resolver import PermissionResolver

logger = logging.getLogger(__name__)


class Outcome(str, PyEnum):
    GRANTED = "GRANTED"
    DENIED = "DENIED"
    ERROR = "ERROR"


class ReasonCode(str, PyEnum):
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    ROLE_INACTIVE = "ROLE_INACTIVE"
    RESOLUTION_ERROR = "RESOLUTION_ERROR"


# HTTP status the web layer answers with for each reason
REASON_STATUS: Dict[ReasonCode, int] = {
    ReasonCode.NOT_AUTHENTICATED: 401,
    ReasonCode.PERMISSION_DENIED: 403,
    ReasonCode.ROLE_INACTIVE: 403,
    ReasonCode.RESOLUTION_ERROR: 500,
}


@dataclass(frozen=True)
class AuthorizationDecision:
    """
    Result of guarding one request.

    Stored on request.state.rbac so handlers can run further checks
    without resolving again.
    """
    outcome: Outcome
    permission: PermissionName
    principal: Optional[Principal] = None
    reason: Optional[ReasonCode] = None
    permissions: FrozenSet[PermissionName] = frozenset()
    elevated: bool = False

    @property
    def granted(self) -> bool:
        return self.outcome is Outcome.GRANTED

    def has_permission(self, permission: PermissionLike) -> bool:
        """In-handler check using the same elevation rule as the guard."""
        if not self.granted:
            return False
        return self.elevated or as_permission_name(permission) in self.permissions

    def raise_for_outcome(self) -> None:
        """Raise the matching RBACError unless the request was granted."""
        if self.granted:
            return
        if self.reason is ReasonCode.NOT_AUTHENTICATED:
            raise NotAuthenticated()
        if self.reason is ReasonCode.ROLE_INACTIVE:
            raise RoleInactive(permission=str(self.permission))
        if self.reason is ReasonCode.RESOLUTION_ERROR:
            raise ResolutionError()
        raise PermissionDenied(permission=str(self.permission))


class RouteGuard:
    """Admits or rejects a principal for one required permission."""

    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    async def authorize(
        self,
        principal: Optional[Principal],
        permission: PermissionLike,
    ) -> AuthorizationDecision:
        name = as_permission_name(permission)

        if principal is None:
            return AuthorizationDecision(
                outcome=Outcome.DENIED,
                permission=name,
                reason=ReasonCode.NOT_AUTHENTICATED,
            )

        if principal.role is not None and not principal.role.is_active:
            logger.warning(f"Denied {name} to user {principal.id}: role '{principal.role.name}' inactive")
            return AuthorizationDecision(
                outcome=Outcome.DENIED,
                permission=name,
                principal=principal,
                reason=ReasonCode.ROLE_INACTIVE,
            )

        if is_elevated(principal):
            return AuthorizationDecision(
                outcome=Outcome.GRANTED,
                permission=name,
                principal=principal,
                elevated=True,
            )

        try:
            permissions = await self.resolver.resolve_effective_permissions(principal)
        except ResolutionError:
            logger.error(f"Denied {name} to user {principal.id}: permission catalog unavailable")
            return AuthorizationDecision(
                outcome=Outcome.ERROR,
                permission=name,
                principal=principal,
                reason=ReasonCode.RESOLUTION_ERROR,
            )

        if name not in permissions:
            logger.warning(f"Denied {name} to user {principal.id}")
            return AuthorizationDecision(
                outcome=Outcome.DENIED,
                permission=name,
                principal=principal,
                reason=ReasonCode.PERMISSION_DENIED,
                permissions=permissions,
            )

        return AuthorizationDecision(
            outcome=Outcome.GRANTED,
            permission=name,
            principal=principal,
            permissions=permissions,
        )
