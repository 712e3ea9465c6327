"""
Permission Resolver - effective permissions for a principal.

Resolution Algorithm:
1. Load the user's single role (the user must be active)
2. Collect permissions joined to that role through role_permissions
3. Keep only active permissions whose module is active
4. An inactive role, or no role, resolves to the empty set

Elevated principals (admin level and above) pass has_permission()
regardless of catalog contents. Catalog read failures raise
ResolutionError so callers deny instead of allowing.
"""

import logging
import time
from typing import FrozenSet, Optional, Set

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import Module, Permission, Role, RolePermission, User

from .cache import CachedPermissions, PermissionCache
from .context import Principal
from .exceptions import ResolutionError
from .ownership import is_elevated
from .permissions import PermissionLike, PermissionName, as_permission_name

logger = logging.getLogger(__name__)


class PermissionResolver:
    """
    Resolves and checks permissions, optionally through a PermissionCache.

    Usage:
        resolver = PermissionResolver(session_factory, get_permission_cache())
        if await resolver.has_permission(principal, "campaigns_update"):
            ...
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Optional[PermissionCache] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache

    async def resolve_effective_permissions(
        self,
        principal: Optional[Principal],
    ) -> FrozenSet[PermissionName]:
        """
        Compute the principal's effective permission set.

        Returns:
            Frozen set of PermissionName (empty for no/inactive role)

        Raises:
            ResolutionError: If the catalog cannot be read
        """
        if principal is None:
            return frozenset()

        if self.cache is None:
            entry = await self._load(principal.id)
        else:
            entry = await self.cache.get_or_load(
                principal.id, lambda: self._load(principal.id)
            )
        return entry.permissions

    async def has_permission(
        self,
        principal: Optional[Principal],
        permission: PermissionLike,
    ) -> bool:
        """
        Check a single permission.

        Never returns True on error: catalog failures propagate as
        ResolutionError.
        """
        if principal is None or not principal.has_active_role:
            return False
        if is_elevated(principal):
            return True
        name = as_permission_name(permission)
        return name in await self.resolve_effective_permissions(principal)

    async def _load(self, user_id: int) -> CachedPermissions:
        # Single round-trip: the outer joins keep the user's row even when the
        # role has no usable permissions, so role_id is always known.
        stmt = (
            select(User.role_id, Permission.name, Module.name)
            .select_from(User)
            .outerjoin(Role, and_(Role.id == User.role_id, Role.is_active.is_(True)))
            .outerjoin(RolePermission, RolePermission.role_id == Role.id)
            .outerjoin(
                Permission,
                and_(
                    Permission.id == RolePermission.permission_id,
                    Permission.is_active.is_(True),
                ),
            )
            .outerjoin(
                Module,
                and_(Module.id == Permission.module_id, Module.is_active.is_(True)),
            )
            .where(User.id == user_id, User.is_active.is_(True))
        )

        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error(f"Permission resolution failed for user {user_id}: {e}", exc_info=True)
            raise ResolutionError() from e

        role_id: Optional[int] = None
        permissions: Set[PermissionName] = set()
        for row_role_id, permission_name, module_name in rows:
            role_id = row_role_id
            if permission_name is None or module_name is None:
                continue
            try:
                name = PermissionName.parse(permission_name)
            except ValueError:
                logger.warning(f"Skipping malformed permission name {permission_name!r}")
                continue
            if name.module != module_name:
                logger.warning(
                    f"Skipping permission {permission_name!r} filed under module {module_name!r}"
                )
                continue
            permissions.add(name)

        logger.debug(f"Resolved {len(permissions)} permissions for user {user_id}")
        return CachedPermissions(
            user_id=user_id,
            role_id=role_id,
            permissions=frozenset(permissions),
            resolved_at=time.time(),
        )
